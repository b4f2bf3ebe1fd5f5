# recallbot/core/registry.py
"""Component registry for pluggable stores, vectorizers and importers."""

from typing import Dict, Type, Any, Optional
import importlib
import inspect

from .errors import ConfigError


class ComponentRegistry:
    """
    Instantiates components named in configuration by their full Python path.

    Example section:
        vectorizer:
          class: recallbot.vectorizers.http_embeddings.HttpEmbeddingVectorizer
          config: {base_url: "https://api.openai.com/v1"}
    """

    def __init__(self):
        self._instances: Dict[str, Any] = {}
        self._classes: Dict[str, Type] = {}

    def register_class(self, class_path: str, cls: Type) -> None:
        """Register a class under a path so load_class() skips the import."""
        self._classes[class_path] = cls

    def load_class(self, class_path: str) -> Type:
        """
        Load a class from its full Python path.

        Raises:
            ConfigError: If the module or class cannot be loaded
        """
        if class_path in self._classes:
            return self._classes[class_path]

        try:
            module_path, class_name = class_path.rsplit('.', 1)
            module = importlib.import_module(module_path)
            cls = getattr(module, class_name)
        except (ValueError, ImportError, AttributeError) as e:
            raise ConfigError(f"Cannot load class '{class_path}': {e}")

        self._classes[class_path] = cls
        return cls

    def create_instance(
        self,
        name: str,
        class_path: str,
        config: Optional[Dict[str, Any]] = None
    ) -> Any:
        """
        Create and cache a component instance.

        Components taking a `config` argument receive the dict as-is, others
        get it unpacked as keyword arguments.
        """
        if name in self._instances:
            return self._instances[name]

        cls = self.load_class(class_path)
        config = config or {}

        sig = inspect.signature(cls.__init__)
        if 'config' in sig.parameters:
            instance = cls(config=config)
        elif len(sig.parameters) > 1:
            instance = cls(**config)
        else:
            instance = cls()

        self._instances[name] = instance
        return instance

    def create_component(self, name: str, section: Optional[Dict[str, Any]]) -> Any:
        """Create a component from a `{class: ..., config: {...}}` config section."""
        if not section or not isinstance(section, dict) or 'class' not in section:
            raise ConfigError(f"Component '{name}' needs a 'class' entry")

        return self.create_instance(name, section['class'], section.get('config'))

    def get_instance(self, name: str) -> Optional[Any]:
        return self._instances.get(name)

    def clear_instances(self) -> None:
        self._instances.clear()
