"""Nginx reverse-proxy site for the deployed application."""

import base64
import logging
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from dockship.config.schema import DockshipConfig
from dockship.errors import ProxyError
from dockship.schemas.deployment import AppIdentity, ProxySite, StageReport
from dockship.services.remote import RemoteExecutor

logger = logging.getLogger(__name__)

# Template directory
TEMPLATE_DIR = Path(__file__).parent / "templates"
SITE_TEMPLATE = "nginx_site.conf.j2"

# First-line marker identifying site files this tool owns
MANAGED_MARKER = "managed-by: dockship"

CONFIGURE_SITE = """
if [ -f "$SITE_PATH" ]; then
  echo "Backing up old Nginx config..."
  $SUDO mv "$SITE_PATH" "${SITE_PATH}.bak_$(date +%s)"
fi
printf '%s' "$SITE_CONTENT" | base64 -d | $SUDO tee "$SITE_PATH" > /dev/null
$SUDO ln -sfn "$SITE_PATH" "$SITE_LINK"
$SUDO nginx -t
if [ "$DISABLE_DEFAULT" = "1" ]; then
  $SUDO rm -f "$SITES_ENABLED/default"
fi
$SUDO systemctl reload nginx
"""

_template_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def render_site(app: AppIdentity, settings: DockshipConfig, server_name: str = "_") -> str:
    """Render the site definition routing the public port to the app."""
    site = ProxySite.for_app(app, settings)
    template = _template_env.get_template(SITE_TEMPLATE)
    return template.render(
        marker=MANAGED_MARKER,
        app_name=app.name,
        public_port=site.public_port,
        upstream_port=site.upstream_port,
        server_name=server_name,
    )


class ProxyConfigurer:
    """Write, activate and reload the app's Nginx site."""

    def __init__(self, executor: RemoteExecutor, app: AppIdentity, settings: DockshipConfig) -> None:
        self.executor = executor
        self.app = app
        self.settings = settings
        self.site = ProxySite.for_app(app, settings)
        self.report = StageReport("proxy")

    def configure(self) -> StageReport:
        """Replace the site file, keeping a timestamped backup of the old one.

        The syntax check runs before the reload; if it fails the daemon keeps
        serving the configuration it last loaded. The stock default
        site is only unlinked once the check has passed.
        """
        logger.info(f"Configuring Nginx reverse proxy for {self.app.name}...")
        self.report = StageReport("proxy")
        content = render_site(self.app, self.settings)
        script = self.executor.script(
            CONFIGURE_SITE,
            SITE_PATH=self.site.config_path,
            SITE_LINK=self.site.link_path,
            SITES_ENABLED=self.settings.proxy.sites_enabled,
            SITE_CONTENT=base64.b64encode(content.encode()).decode(),
            DISABLE_DEFAULT="1" if self.settings.proxy.disable_default_site else "0",
        )
        result = self.executor.execute_or_raise(
            script,
            name="configure-proxy",
            error=ProxyError,
            message="Nginx configuration failed",
        )
        self.report.add(result)
        logger.info(
            f"Nginx reverse proxy configured: port {self.site.public_port} -> localhost:{self.site.upstream_port}"
        )
        return self.report
