from shared.clients.objects.ObjectsClientInterface import ObjectsClientInterface
from shared.helper.HelperConfig import HelperConfig


class ObjectsClientManager:
    """Manager class to instantiate the configured object store client."""

    def __init__(self, helper_config: HelperConfig):
        self.helper_config = helper_config
        self.logging = helper_config.get_logger()
        self.client = self._initialize_client()

    def _get_engine_from_env(self) -> str:
        """Read the object store engine name from env configuration.

        Returns:
            str: Capitalised engine name (e.g. "Firebase").

        Raises:
            ValueError: If OBJECTS_ENGINE is not set or empty.
        """
        engine = self.helper_config.get_string_val("OBJECTS_ENGINE")
        if not engine:
            raise ValueError("No object store engine specified in configuration (OBJECTS_ENGINE).")
        return engine.strip().lower().capitalize()

    def _initialize_client(self) -> ObjectsClientInterface:
        """Instantiate the object store client for the configured engine.

        Raises:
            ValueError: If the engine is unsupported or cannot be imported.
        """
        engine = self._get_engine_from_env()
        class_name = f"ObjectsClient{engine}"
        try:
            module = __import__(
                f"shared.clients.objects.{engine.lower()}.{class_name}",
                fromlist=[class_name],
            )
            client_class = getattr(module, class_name)
            client = client_class(helper_config=self.helper_config)
            self.logging.debug("Instantiated object store client for engine: %s", engine)
            return client
        except (ImportError, AttributeError) as e:
            raise ValueError("Unsupported object store engine '%s'. Error: %s" % (engine, e))

    def get_client(self) -> ObjectsClientInterface:
        """Return the instantiated object store client."""
        return self.client
