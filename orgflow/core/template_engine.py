"""
Template engine configuration for invitation and verification emails.
"""
import os
from typing import Any, Dict, Optional
from jinja2 import Environment, FileSystemLoader, select_autoescape

DEFAULT_TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(__file__)), "templates")


def create_jinja_env(templates_dir: Optional[str] = None):
    """
    Create a Jinja2 environment.

    Args:
        templates_dir: Directory containing template files. Defaults to the
            templates shipped with the package.

    Returns:
        Jinja2 Environment
    """
    env = Environment(
        loader=FileSystemLoader(templates_dir or DEFAULT_TEMPLATES_DIR),
        autoescape=select_autoescape(['html', 'xml']),
        trim_blocks=True,
        lstrip_blocks=True
    )

    return env


class TemplateRenderer:
    """Renders named email templates (``<name>.html``) with a variable map."""

    def __init__(self, templates_dir: Optional[str] = None):
        self.env = create_jinja_env(templates_dir)

    def render(self, template_name: str, variables: Dict[str, Any]) -> str:
        template = self.env.get_template(f"{template_name}.html")
        return template.render(**variables)
