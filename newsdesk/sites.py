"""Site registry: which behaviours each property opts into."""

from dataclasses import dataclass

from newsdesk.errors import NotFound


@dataclass(frozen=True)
class Site:
    """Per-site configuration."""

    key: str
    name: str
    suffix_slugs: bool = False
    has_sections: bool = False
    has_comments: bool = False
    story_kinds: tuple[str, ...] = ("feature",)


SITES: dict[str, Site] = {
    "ghanapolitan": Site(
        key="ghanapolitan",
        name="Ghanapolitan",
        suffix_slugs=True,
        has_sections=True,
        has_comments=True,
        story_kinds=("feature", "opinion", "graphic", "chart"),
    ),
    "ghanascore": Site(key="ghanascore", name="Ghanascore"),
    "afrobeatsrep": Site(key="afrobeatsrep", name="Afrobeatsrep"),
}


def get_site(key: str) -> Site:
    site = SITES.get(key)
    if site is None:
        raise NotFound(f"Unknown site '{key}'")
    return site
