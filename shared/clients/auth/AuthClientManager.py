from shared.clients.auth.AuthClientInterface import AuthClientInterface
from shared.helper.HelperConfig import HelperConfig


class AuthClientManager:
    """Manager class to instantiate the configured identity provider client."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """Read the identity provider engine name from env configuration.

        Returns:
            str: Capitalised engine name (e.g. "Firebase").

        Raises:
            ValueError: If AUTH_ENGINE is not set or empty.
        """
        engine = self.helper_config.get_string_val("AUTH_ENGINE")
        if not engine:
            raise ValueError("No identity provider engine specified in configuration (AUTH_ENGINE).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> AuthClientInterface:
        """Instantiate the identity provider client for the configured engine.

        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"AuthClient{engine}"
        try:
            module = __import__(
                f"shared.clients.auth.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
            client = client_class(helper_config=self.helper_config)
            self.logging.debug("Instantiated identity provider client for engine: %s", engine)
            return client
        except (ImportError, AttributeError) as e:
            raise ValueError("Unsupported identity provider engine '%s'. Error: %s" % (engine, e))

    def get_client(self) -> AuthClientInterface:
        """Return the instantiated identity provider client."""
        return self.client
