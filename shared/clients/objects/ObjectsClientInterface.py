from abc import abstractmethod

from shared.clients.ClientInterface import ClientInterface
from shared.helper.HelperConfig import HelperConfig


class ObjectsClientInterface(ClientInterface):
    """Object store for attachment files and profile pictures."""

    def __init__(self, helper_config: HelperConfig):
        super().__init__(helper_config=helper_config)

    ################ GENERAL ##################
    def _get_client_type(self) -> str:
        return "objects"

    ##########################################
    ############### REQUESTS #################
    ##########################################

    @abstractmethod
    async def do_upload(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        """
        Upload bytes to ``path``, replacing any existing object.

        Returns:
            str: A download URL for the uploaded object.

        Raises:
            StoreError: If the upload fails.
        """
        pass

    @abstractmethod
    async def do_get_download_url(self, path: str) -> str:
        """
        Raises:
            NotFoundError: If there is no object at the path.
            StoreError: If the lookup fails.
        """
        pass

    @abstractmethod
    async def do_delete(self, path: str) -> None:
        """
        Delete the object at ``path``; deleting a missing object is not an error.

        Raises:
            StoreError: If the deletion fails.
        """
        pass
