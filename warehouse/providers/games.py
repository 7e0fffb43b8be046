"""Games known to the gateway."""

from ..models import AppConfig, Game
from ..models.config import DEFAULT_MANIFEST_URL
from ..services.http_client import HttpClientService
from .vanilla import VanillaProvider


def build_minecraft(http_client: HttpClientService, manifest_url: str = DEFAULT_MANIFEST_URL) -> Game:
    game = Game(id="minecraft")
    game.add_provider(VanillaProvider(http_client, manifest_url=manifest_url))
    return game


def default_games(http_client: HttpClientService, config: AppConfig) -> list[Game]:
    """Games registered at startup."""
    return [build_minecraft(http_client, manifest_url=config.manifest_url)]
