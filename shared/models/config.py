from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single environment setting a client needs before it can boot.

    Attributes:
        env_key (str): The raw key; the client prefixes it with ``<TYPE>_<ENGINE>_``,
            e.g. "DATABASE_URL" becomes "STORE_FIREBASE_DATABASE_URL".
        val_type (str): One of "string", "number", "bool" and "list".
        default (str | int | float | bool | list | None): Used when the variable is unset.
            None marks the setting as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
