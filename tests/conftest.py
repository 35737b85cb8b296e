"""Shared fixtures: a throwaway site directory with a CSV manifest."""

from pathlib import Path

import pytest

from csvgallery import DEFAULT_CSV_PATH, SiteConfig

TRIP_CSV = "id,series,time,place\np1,Trip,2020,Paris\np2,Trip,2021,Rome\n"


@pytest.fixture
def make_site(tmp_path):
    """Write `csv_text` as the site's manifest and return a config pointing at it."""

    def _make(csv_text: str, **overrides) -> SiteConfig:
        csv_file = tmp_path / DEFAULT_CSV_PATH
        csv_file.parent.mkdir(parents=True, exist_ok=True)
        csv_file.write_text(csv_text, encoding="utf-8")
        return SiteConfig(site_root=tmp_path, **overrides)

    return _make


@pytest.fixture
def trip_site(make_site) -> SiteConfig:
    return make_site(TRIP_CSV)


@pytest.fixture
def site_root(trip_site) -> Path:
    return trip_site.site_root
