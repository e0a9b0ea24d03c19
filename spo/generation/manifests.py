"""
Manifest generation from Jinja2 templates.

Templates live in the manifests directory as ``<name>.yaml.jinja``. Structured values such
as env lists or resource requirements are passed through the ``tojson`` filter, which
produces valid YAML flow style.
"""

import logging
import os
from typing import Any

from jinja2 import BaseLoader, Environment, StrictUndefined

from spo.core.config import settings
from spo.utils.yaml_util import load_yaml_from_string

logger = logging.getLogger(__name__)


class ManifestGenerator:
    """Generator for Kubernetes manifests from templates."""

    def __init__(self, manifests_path: str | None = None):
        self.manifests_path = manifests_path or settings.MANIFESTS_PATH
        self._environment = Environment(
            loader=BaseLoader(), undefined=StrictUndefined, trim_blocks=True, lstrip_blocks=True
        )
        self._cache: dict[str, str] = {}
        logger.debug(f"ManifestGenerator initialized with templates from {self.manifests_path}")

    def template_manifest(self, manifest_content: str, variables: dict[str, Any]) -> str:
        """
        Replace Jinja2 template variables in a manifest.

        Args:
            manifest_content: The content of the manifest template
            variables: Dictionary of variables to replace, can include nested dictionaries

        Returns:
            The processed manifest content with variables replaced

        Raises:
            RuntimeError: If the template cannot be rendered
        """
        logger.debug(f"Templating manifest with Jinja2 variables: {variables.keys()}")

        try:
            template = self._environment.from_string(manifest_content)
            return template.render(**variables)
        except Exception as e:
            error_msg = f"Error templating manifest with Jinja2: {e}"
            logger.error(error_msg)
            raise RuntimeError(error_msg)

    def _read_template(self, template_name: str) -> str:
        if template_name not in self._cache:
            template_path = os.path.join(self.manifests_path, f"{template_name}.yaml.jinja")
            if not os.path.exists(template_path):
                raise RuntimeError(f"Template file not found: {template_path}")
            with open(template_path, encoding="utf-8") as f:
                self._cache[template_name] = f.read()
        return self._cache[template_name]

    def render_text(self, template_name: str, variables: dict[str, Any]) -> str:
        """Render a template to text without parsing it."""
        return self.template_manifest(self._read_template(template_name), variables)

    def render_manifest(self, template_name: str, variables: dict[str, Any]) -> dict[str, Any]:
        """
        Render a template and parse it into a manifest dictionary.

        Raises:
            RuntimeError: If the template is missing, fails to render or is not a YAML mapping
        """
        rendered = self.render_text(template_name, variables)
        manifest = load_yaml_from_string(rendered)
        if manifest is None:
            raise RuntimeError(f"Template {template_name} did not produce a valid manifest")
        return manifest
