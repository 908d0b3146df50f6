"""
Source adapter registry and factory.
"""

from __future__ import annotations

import importlib
from collections.abc import Mapping

from rentindex.scraping.adapters.base import SourceAdapter
from rentindex.scraping.config.models import PipelineSettings, SourceConfig
from rentindex.scraping.errors import AdapterConfigError
from rentindex.scraping.fetch_client import ThrottledFetchClient


class SourceAdapterRegistry:
    """
    Resolves a source's ``adapter`` setting to a SourceAdapter class, either a
    registered short name or a ``module.path:ClassName`` import path.
    """

    def __init__(self, registrations: Mapping[str, type[SourceAdapter]] | None = None) -> None:
        self._registrations: dict[str, type[SourceAdapter]] = {}
        for name, adapter_class in (registrations or {}).items():
            self.register(adapter_name=name, adapter_class=adapter_class)

    def register(self, *, adapter_name: str, adapter_class: type[SourceAdapter]) -> None:
        self._registrations[adapter_name.strip().lower()] = adapter_class

    def registered_names(self) -> list[str]:
        return sorted(self._registrations)

    def create_adapter(
        self,
        *,
        config: SourceConfig,
        fetch_client: ThrottledFetchClient,
        settings: PipelineSettings,
    ) -> SourceAdapter:
        adapter_class = self._resolve_adapter_class(config)
        try:
            return adapter_class(config=config, fetch_client=fetch_client, settings=settings)
        except TypeError as exc:
            raise AdapterConfigError(
                f"Adapter '{config.adapter}' for source '{config.name}' could not be constructed: {exc}"
            ) from exc

    def _resolve_adapter_class(self, config: SourceConfig) -> type[SourceAdapter]:
        if ":" in config.adapter:
            return self._load_dynamic_class(config.adapter)

        resolved = self._registrations.get(config.adapter.strip().lower())
        if resolved is None:
            allowed = ", ".join(self.registered_names()) or "none registered"
            raise AdapterConfigError(
                f"Unknown adapter='{config.adapter}' for source='{config.name}'. "
                f"Registered adapters: {allowed}."
            )
        return resolved

    @staticmethod
    def _load_dynamic_class(path: str) -> type[SourceAdapter]:
        module_path, class_name = path.split(":", 1)
        try:
            module = importlib.import_module(module_path)
        except ImportError as exc:
            raise AdapterConfigError(f"Unable to import adapter module '{module_path}': {exc}") from exc
        loaded = getattr(module, class_name, None)
        if loaded is None:
            raise AdapterConfigError(f"Unable to resolve adapter class '{path}'.")
        if not isinstance(loaded, type) or not issubclass(loaded, SourceAdapter):
            raise AdapterConfigError(f"Class '{path}' must inherit from SourceAdapter.")
        return loaded
