from urllib.parse import quote

import httpx

from shared.clients.objects.ObjectsClientInterface import ObjectsClientInterface
from shared.helper.HelperConfig import HelperConfig
from shared.models.config import EnvConfig
from shared.models.errors import NotFoundError, PermissionDeniedError, StoreError


class ObjectsClientFirebase(ObjectsClientInterface):
    """Firebase Storage over its REST API (``/v0/b/{bucket}/o``)."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)
        self._bucket = self.get_config_val("BUCKET", default=None, val_type="string")
        self._base_url = self.get_config_val("BASE_URL", default="https://firebasestorage.googleapis.com", val_type="string")
        self._auth_token = self.get_config_val("AUTH_TOKEN", default="", val_type="string")

    ##########################################
    ################ GETTER ##################
    ##########################################

    ################ GENERAL ##################
    def _get_engine_name(self) -> str:
        return "Firebase"

    ################ CONFIG ##################
    def _get_required_config(self) -> list[EnvConfig]:
        return [
            EnvConfig(env_key="BUCKET", val_type="string", default=None),
            EnvConfig(env_key="BASE_URL", val_type="string", default="https://firebasestorage.googleapis.com"),
            EnvConfig(env_key="AUTH_TOKEN", val_type="string", default=""),
        ]

    ################ AUTH ##################
    def _get_auth_params(self) -> dict:
        return {}

    def _get_auth_header(self) -> dict:
        if self._auth_token:
            return {"Authorization": f"Firebase {self._auth_token}"}
        return {}

    ################ ENDPOINTS ##################
    def _get_base_url(self) -> str:
        return self._base_url

    def _get_endpoint_healthcheck(self) -> str:
        return f"/v0/b/{self._bucket}/o"

    def _get_endpoint_objects(self) -> str:
        return f"/v0/b/{self._bucket}/o"

    def _get_endpoint_object(self, path: str) -> str:
        return f"/v0/b/{self._bucket}/o/{quote(path.strip('/'), safe='')}"

    ##########################################
    ########### RESPONSE PARSER ##############
    ##########################################

    def _build_download_url(self, path: str, metadata: dict) -> str:
        token = (metadata.get("downloadTokens") or "").split(",")[0]
        url = f"{self._base_url.rstrip('/')}{self._get_endpoint_object(path)}?alt=media"
        return f"{url}&token={token}" if token else url

    def _check_response(self, response: httpx.Response, action: str, path: str) -> None:
        if response.is_success:
            return
        self.logging.error("Object %s of '%s' failed with status %d: %s", action, path, response.status_code, response.text)
        if response.status_code == 404:
            raise NotFoundError(f"File '{path}' does not exist.")
        if response.status_code in (401, 403):
            raise PermissionDeniedError(f"Permission denied: cannot {action} '{path}'.")
        raise StoreError(f"Failed to {action} '{path}' (status {response.status_code}).")

    ##########################################
    ############### REQUESTS #################
    ##########################################

    async def do_upload(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        headers = {"Content-Type": content_type}
        headers.update(self._get_auth_header())
        response = await self.do_request(
            method="POST",
            endpoint=self._get_endpoint_objects(),
            params={"uploadType": "media", "name": path.strip("/")},
            content=content,
            additional_headers=headers,
        )
        self._check_response(response, "upload", path)
        self.logging.debug("Uploaded %d bytes to '%s'.", len(content), path)
        return self._build_download_url(path, response.json())

    async def do_get_download_url(self, path: str) -> str:
        response = await self.do_request(
            method="GET",
            endpoint=self._get_endpoint_object(path),
            additional_headers=self._get_auth_header(),
        )
        self._check_response(response, "look up", path)
        return self._build_download_url(path, response.json())

    async def do_delete(self, path: str) -> None:
        response = await self.do_request(
            method="DELETE",
            endpoint=self._get_endpoint_object(path),
            additional_headers=self._get_auth_header(),
        )
        if response.status_code == 404:
            return
        self._check_response(response, "delete", path)
