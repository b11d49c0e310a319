"""Dovecot configuration rendering."""

from apthelpers.config_loader import CONFIG_MANAGER, DovecotSettings
from apthelpers.global_logger import logger
from jinja2 import Environment, PackageLoader, StrictUndefined
from pathlib import Path

TEMPLATE_NAME = "dovecot.conf.j2"

_environment = Environment(
    loader=PackageLoader("apthelpers", "templates"),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render_dovecot_config(settings: DovecotSettings = None) -> str:
    """Render the dovecot.conf file content.

    Args:
        settings: Values to interpolate. Defaults to the ``dovecot`` section
            of the loaded configuration.

    Returns:
        str: The rendered content of ``dovecot.conf``.
    """
    settings = settings or CONFIG_MANAGER.dovecot
    context = settings.model_dump()
    context["postmaster"] = settings.postmaster
    return _environment.get_template(TEMPLATE_NAME).render(**context)


def write_dovecot_config(settings: DovecotSettings = None, path="/etc/dovecot/dovecot.conf") -> Path:
    path = Path(path)
    content = render_dovecot_config(settings)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    logger.info(f"Wrote Dovecot configuration to {path}")
    return path
