import httpx

from shared.clients.objects.ObjectsClientInterface import ObjectsClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import NotFoundError, StoreError


class ObjectsClientMemory(ObjectsClientInterface):
    """In-process object store for local development and tests."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._booted = False

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Memory"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return []

    ################ AUTH ##################
    def _get_auth_params(self) -> dict:
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return "memory://objects"

    def _get_endpoint_healthcheck(self) -> str:
        return ""

    ##########################################
    ############ CORE REQUESTS ###############
    ##########################################

    async def boot(self) -> None:
        self._booted = True

    async def close(self) -> None:
        self._booted = False

    def is_booted(self) -> bool:
        return self._booted

    async def do_healthcheck(self) -> httpx.Response:
        return httpx.Response(200 if self._booted else 503)

    def _ensure_booted(self) -> None:
        if not self._booted:
            raise StoreError("objects client 'memory' is not booted. Call boot() before making requests.")

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_upload(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        self._ensure_booted()
        key = path.strip("/")
        self._objects[key] = (bytes(content), content_type)
        return self.build_url(key)

    async def do_get_download_url(self, path: str) -> str:
        self._ensure_booted()
        key = path.strip("/")
        if key not in self._objects:
            raise NotFoundError(f"File '{path}' does not exist.")
        return self.build_url(key)

    async def do_delete(self, path: str) -> None:
        self._ensure_booted()
        self._objects.pop(path.strip("/"), None)

    def get_object(self, path: str) -> tuple[bytes, str] | None:
        """Return the stored bytes and content type, for inspection in tests and tooling."""
        return self._objects.get(path.strip("/"))
