"""
HTML page rendering (Jinja2 templates in ``songbook/templates``).

Every full page carries the role-dependent chrome and, while the first-run
alert is armed, the banner holding the administrator key.
"""

from pathlib import Path
from typing import Any, List

from fastapi.templating import Jinja2Templates
from markupsafe import Markup

from .keys import KeyStore
from .models import SearchHit

TEMPLATES_DIR = Path(__file__).parent / "templates"
SITE_TITLE = "My SongBook"


def page_title(*parts: str) -> str:
    return " - ".join([p for p in parts if p] + [SITE_TITLE])


class Views:
    def __init__(self, keys: KeyStore, directory: Path = TEMPLATES_DIR) -> None:
        self.keys = keys
        self.templates = Jinja2Templates(directory=str(directory))

    def render(self, template: str, *, title: str, role: str, path: str = "/", alert: bool = True, **context: Any) -> str:
        alert_key = self.keys.administrator_key if alert and self.keys.alert_armed else None
        return self.templates.get_template(template).render(
            title=title,
            role=role,
            path=path,
            alert_key=alert_key,
            **context,
        )

    def results_fragment(self, hits: List[SearchHit]) -> Markup:
        """Search hits as an HTML fragment (no page chrome)."""
        return Markup(self.templates.get_template("_results.html").render(hits=hits))
