# /// script
# dependencies = ["pillow", "jinja2", "markupsafe", "httpx", "pypinyin"]
# ///
"""
csvgallery: Render a photo gallery from a CSV manifest.

Usage:
    uv run --script csvgallery.py serve --root site/
    uv run --script csvgallery.py render series --query "s=Trip" --root site/

Each page load reads the CSV fresh (a local file under --root, or an http(s)
URL), turns its rows into photos, and renders one of three pages:

    index.html                 one card per series
    series.html?s=<series>     one card per photo in the series
    photo.html?s=<series>&id=  a single photo with prev/next links
"""

import argparse
import http.server
import re
import sys
import unicodedata
from dataclasses import dataclass, replace
from functools import partial
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, quote, urlparse

import httpx
from jinja2 import Environment
from markupsafe import Markup
from PIL import Image
from pypinyin import lazy_pinyin

_jinja_env = Environment(autoescape=True)
Template = _jinja_env.from_string

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_CSV_PATH = "data/图片信息.csv"
DEFAULT_PHOTOS_ROOT = "."
DEFAULT_SERIES = "默认系列"
SITE_TITLE = "照片档案"

ID_COLUMNS = ("photo_id", "id", "photo", "photoId")
SERIES_COLUMNS = ("series", "series_slug", "album")
INFO_FIELDS = (("time", "时间"), ("place", "地点"), ("highlight", "亮点"), ("source", "来源"))

PAGE_MODES = ("index", "series", "photo")
CAPTION_POLICIES = ("omit", "placeholder")

CAPTION_SEPARATOR = "｜"
PLACEHOLDER = "待补充"
DEFAULT_IMAGE_EXT = ".jpg"

CSV_LOAD_ERROR = "CSV 加载失败，请检查 data 路径或权限。"
PHOTO_NOT_FOUND = "未找到该照片，请检查链接或 CSV 数据。"
SERIES_PENDING = "内容整理中"
CARD_TAGS = ("照片档案", "点击进入")

NO_CACHE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}
FETCH_TIMEOUT = 30


@dataclass(frozen=True)
class SiteConfig:
    """Page-level settings shared by every page of the site."""

    csv_path: str = DEFAULT_CSV_PATH
    photos_root: str = DEFAULT_PHOTOS_ROOT
    default_series: str = DEFAULT_SERIES
    caption_policy: str = "omit"
    site_root: Path = Path(".")
    check_images: bool = False

    def __post_init__(self):
        if self.caption_policy not in CAPTION_POLICIES:
            raise ValueError(f"unknown caption policy: {self.caption_policy!r}")


class GalleryLoadError(Exception):
    """The CSV manifest could not be fetched. The message is shown to visitors."""

    def __init__(self, message: str = CSV_LOAD_ERROR):
        super().__init__(message)


# ---------------------------------------------------------------------------
# Fallback image
# ---------------------------------------------------------------------------

FALLBACK_SVG = (
    '<svg xmlns="http://www.w3.org/2000/svg" width="800" height="600" viewBox="0 0 800 600">'
    '<defs><linearGradient id="g" x1="0" y1="0" x2="1" y2="1">'
    '<stop offset="0%" stop-color="#f5e9d6"/><stop offset="100%" stop-color="#e4d1b8"/>'
    "</linearGradient></defs>"
    '<rect width="800" height="600" fill="url(#g)"/>'
    '<g fill="#8b7a67" font-family="Noto Sans SC, sans-serif" font-size="28" text-anchor="middle">'
    '<text x="400" y="300">图片加载失败</text>'
    "</g></svg>"
)


def encode_uri_component(value: str) -> str:
    """Percent-encode a single URL component (query value)."""
    return quote(value, safe="!~*'()")


def encode_uri(value: str) -> str:
    """Percent-encode a whole path, keeping URL delimiters intact."""
    return quote(value, safe=";,/?:@&=+$!~*'()#")


FALLBACK_IMAGE = "data:image/svg+xml;utf8," + encode_uri_component(FALLBACK_SVG)

# Swaps once; a second error on the fallback itself is ignored.
IMG_ONERROR = "this.onerror=null;this.src=this.dataset.fallback"


# ---------------------------------------------------------------------------
# Step 1: Load the CSV
# ---------------------------------------------------------------------------

def is_url(value: str) -> bool:
    return urlparse(value).scheme in ("http", "https")


def fetch_csv(url: str, client: Optional[httpx.Client] = None) -> str:
    """GET the CSV bypassing caches. Any failure becomes a GalleryLoadError."""
    if client is None:
        with httpx.Client(follow_redirects=True, timeout=FETCH_TIMEOUT) as own_client:
            return fetch_csv(url, own_client)

    try:
        resp = client.get(url, headers=NO_CACHE_HEADERS)
    except httpx.HTTPError as e:
        raise GalleryLoadError() from e
    if not resp.is_success:
        raise GalleryLoadError()
    return resp.content.decode("utf-8", errors="replace")


def load_csv_text(config: SiteConfig, client: Optional[httpx.Client] = None) -> str:
    """Read the CSV named by the config, from the network or from site_root."""
    if is_url(config.csv_path):
        return fetch_csv(config.csv_path, client)

    path = Path(config.site_root) / config.csv_path
    try:
        data = path.read_bytes()
    except OSError as e:
        raise GalleryLoadError() from e
    return data.decode("utf-8", errors="replace")


# ---------------------------------------------------------------------------
# Step 2: Parse CSV text
# ---------------------------------------------------------------------------

def split_csv_records(text: str) -> list[list[str]]:
    """Split CSV text into records of raw cells.

    Handles quoted fields with doubled quotes and embedded newlines. A bare
    carriage return outside quotes is dropped, so CRLF and LF both work. An
    unterminated quote simply runs to the end of the input.
    """
    records = []
    row: list[str] = []
    field = []
    in_quotes = False
    i = 0
    n = len(text)

    while i < n:
        char = text[i]
        i += 1

        if in_quotes:
            if char == '"':
                if i < n and text[i] == '"':
                    field.append('"')
                    i += 1
                else:
                    in_quotes = False
            else:
                field.append(char)
            continue

        if char == '"':
            in_quotes = True
        elif char == ",":
            row.append("".join(field))
            field = []
        elif char == "\n":
            row.append("".join(field))
            records.append(row)
            row = []
            field = []
        elif char != "\r":
            field.append(char)

    if field or row:
        row.append("".join(field))
        records.append(row)

    return records


def parse_csv(text: str) -> list[dict[str, str]]:
    """Parse CSV text into one dict per data row, keyed by the header row."""
    records = split_csv_records(text)
    if not records:
        return []

    header = [cell.removeprefix("\ufeff").strip() for cell in records[0]]

    rows = []
    for cells in records[1:]:
        row = {}
        for idx, key in enumerate(header):
            row[key] = cells[idx].strip() if idx < len(cells) else ""
        if any(row.values()):
            rows.append(row)
    return rows


# ---------------------------------------------------------------------------
# Step 3: Normalize rows into photos
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Photo:
    id: str
    series: str
    time: str = ""
    place: str = ""
    highlight: str = ""
    source: str = ""
    image: str = ""


_file_ext_re = re.compile(r"\.[A-Za-z0-9]+$")


def has_file_ext(value: str) -> bool:
    return bool(_file_ext_re.search(value))


def join_path(*parts: str) -> str:
    """Join path segments with single slashes.

    The first segment keeps its leading slash (if any) and loses trailing
    ones; later segments lose both. Empty segments are skipped.
    """
    cleaned = []
    for part in parts:
        if not part:
            continue
        part = part.rstrip("/") if not cleaned else part.strip("/")
        if part:
            cleaned.append(part)
    return "/".join(cleaned)


def first_value(row: dict[str, str], keys) -> str:
    """Return the first non-empty value among `keys`, in order."""
    for key in keys:
        value = (row.get(key) or "").strip()
        if value:
            return value
    return ""


def resolve_series(row: dict[str, str], photo_id: str, default_series: str) -> str:
    series = first_value(row, SERIES_COLUMNS)
    if series:
        return series
    if "/" in photo_id:
        prefix = photo_id.split("/", 1)[0].strip()
        if prefix:
            return prefix
    return default_series


def build_image_path(photo_id: str, series: str, photos_root: str) -> str:
    """Derive the image file path for a photo.

    `Trip/p1` -> {root}/Trip/p1.jpg, `p1` in series Trip -> {root}/Trip/p1.jpg.
    An existing extension is kept as-is.
    """
    photo_id = photo_id.strip()
    if not photo_id:
        return ""
    file_name = photo_id if has_file_ext(photo_id) else photo_id + DEFAULT_IMAGE_EXT
    if "/" in photo_id:
        return join_path(photos_root, file_name)
    return join_path(photos_root, series, file_name)


def normalize_photo(row: dict[str, str], config: SiteConfig) -> Optional[Photo]:
    """Build a Photo from one CSV row, or None when the row has no identifier."""
    photo_id = first_value(row, ID_COLUMNS)
    if not photo_id:
        return None

    series = resolve_series(row, photo_id, config.default_series)
    return Photo(
        id=photo_id,
        series=series,
        time=(row.get("time") or "").strip(),
        place=(row.get("place") or "").strip(),
        highlight=(row.get("highlight") or "").strip(),
        source=(row.get("source") or "").strip(),
        image=build_image_path(photo_id, series, config.photos_root),
    )


def normalize_photos(rows: list[dict[str, str]], config: SiteConfig) -> list[Photo]:
    photos = []
    for row in rows:
        photo = normalize_photo(row, config)
        if photo is not None:
            photos.append(photo)
    return photos


def load_photos(config: SiteConfig, client: Optional[httpx.Client] = None) -> list[Photo]:
    """Fetch, parse and normalize the manifest named by the config."""
    rows = parse_csv(load_csv_text(config, client))
    photos = normalize_photos(rows, config)
    skipped = len(rows) - len(photos)
    print(f"  Loaded {len(photos)} photos from {config.csv_path}"
          + (f" ({skipped} rows without id skipped)" if skipped else ""), file=sys.stderr)
    return photos


# ---------------------------------------------------------------------------
# Step 4: Collate and group
# ---------------------------------------------------------------------------

_num_re = re.compile(r"(\d+)")
_han_re = re.compile(r"([\u3400-\u4dbf\u4e00-\u9fff\uf900-\ufaff\U00020000-\U0002ffff]+)")


def collation_key(value: str) -> tuple:
    """Natural-order key: numbers compare by value, text ignores case and accents.

    `img2` sorts before `img10`, `Été` next to `ete`. Han characters compare by
    pinyin, so `北京` (bei) sorts before `中山` (zhong). Digit runs come first,
    then other text, then Han, as the zh collation does.
    """
    decomposed = unicodedata.normalize("NFKD", value)
    folded = "".join(ch for ch in decomposed if not unicodedata.combining(ch)).casefold()
    key = []
    for run in _han_re.split(folded):
        if not run:
            continue
        if _han_re.fullmatch(run):
            key.extend((2, 0, syllable) for syllable in lazy_pinyin(run))
            continue
        for tok in _num_re.split(run):
            if not tok:
                continue
            if tok.isdigit():
                key.append((0, int(tok), ""))
            else:
                key.append((1, 0, tok))
    return tuple(key)


def sort_photos(photos: list[Photo]) -> list[Photo]:
    # sorted() is stable: ids that collate equal keep their CSV order
    return sorted(photos, key=lambda p: collation_key(p.id))


def group_by_series(photos: list[Photo], default_series: str = DEFAULT_SERIES) -> list[tuple[str, list[Photo]]]:
    """Group photos by series in order of first appearance, each group sorted."""
    groups: dict[str, list[Photo]] = {}
    for photo in photos:
        groups.setdefault(photo.series or default_series, []).append(photo)
    return [(key, sort_photos(items)) for key, items in groups.items()]


def photos_in_series(photos: list[Photo], series: str) -> list[Photo]:
    return sort_photos([p for p in photos if p.series == series])


def pick_first(photos: list[Photo], field: str) -> str:
    """First non-empty value of `field` across the photos, in list order."""
    for photo in photos:
        value = (getattr(photo, field, "") or "").strip()
        if value:
            return value
    return ""


def join_non_empty(parts, separator: str = CAPTION_SEPARATOR) -> str:
    return separator.join(p.strip() for p in parts if p and p.strip())


def caption_for(photo: Photo, policy: str = "omit") -> str:
    """Compose time / place / highlight into one caption line.

    "omit" leaves blank fields out (and may return ""); "placeholder" always
    shows all three, with PLACEHOLDER standing in for blanks.
    """
    parts = [photo.time, photo.place, photo.highlight]
    if policy == "placeholder":
        parts = [p.strip() or PLACEHOLDER for p in parts]
    return join_non_empty(parts)


# ---------------------------------------------------------------------------
# Step 5: View models
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SeriesCard:
    key: str
    href: str
    image: str
    src: str
    count: int
    time_hint: str
    place_hint: str
    meta_lines: tuple
    delay_ms: int
    tags: tuple = CARD_TAGS


@dataclass(frozen=True)
class IndexView:
    cards: tuple = ()
    empty: bool = False
    primary_link: Optional[str] = None


@dataclass(frozen=True)
class PhotoCard:
    id: str
    href: str
    image: str
    src: str
    alt: str
    caption: str
    delay_ms: int


@dataclass(frozen=True)
class SeriesView:
    series: str
    title: str
    meta: str = ""
    cards: tuple = ()
    empty: bool = False


@dataclass(frozen=True)
class NavLink:
    href: str = "#"
    disabled: bool = True


@dataclass(frozen=True)
class InfoRow:
    field: str
    label: str
    value: str


@dataclass(frozen=True)
class PhotoView:
    series: str
    photo: Optional[Photo] = None
    error: Optional[str] = None
    image: str = ""
    src: str = ""
    alt: str = ""
    title: Optional[str] = None
    info: tuple = ()
    back_href: str = ""
    prev: NavLink = NavLink()
    next: NavLink = NavLink()


def series_href(series: str) -> str:
    return f"series.html?s={encode_uri_component(series)}"


def photo_href(series: str, photo_id: str) -> str:
    return f"photo.html?s={encode_uri_component(series)}&id={encode_uri_component(photo_id)}"


def parse_query(query) -> dict[str, str]:
    """Accept a raw query string or a mapping; keep the first value of each key."""
    if isinstance(query, dict):
        return {k: (v or "") for k, v in query.items()}
    query = (query or "").lstrip("?")
    return {k: v[0] for k, v in parse_qs(query, keep_blank_values=True).items()}


def hint_lines(count: int, time_hint: str, place_hint: str) -> list[str]:
    lines = [f"共 {count} 张"]
    if time_hint:
        lines.append(f"时间 {time_hint}")
    if place_hint:
        lines.append(f"地点 {place_hint}")
    return lines


def build_index_view(photos: list[Photo], config: SiteConfig) -> IndexView:
    """One card per series, linking to its series page."""
    groups = group_by_series(photos, config.default_series)
    if not groups:
        return IndexView(empty=True)

    cards = []
    for index, (key, items) in enumerate(groups):
        cover = items[0]
        time_hint = pick_first(items, "time")
        place_hint = pick_first(items, "place")
        cards.append(SeriesCard(
            key=key,
            href=series_href(key),
            image=cover.image,
            src=encode_uri(cover.image),
            count=len(items),
            time_hint=time_hint,
            place_hint=place_hint,
            meta_lines=tuple(hint_lines(len(items), time_hint, place_hint)),
            delay_ms=index * 80,
        ))
    return IndexView(cards=tuple(cards), primary_link=cards[0].href)


def build_series_view(photos: list[Photo], query, config: SiteConfig) -> SeriesView:
    """The photo grid for the series named by `s`, in CSV order."""
    params = parse_query(query)
    series = params.get("s") or config.default_series
    items = [p for p in photos if p.series == series]

    if not items:
        return SeriesView(series=series, title=SERIES_PENDING, empty=True)

    meta = " · ".join(hint_lines(len(items), pick_first(items, "time"), pick_first(items, "place")))
    cards = []
    for index, photo in enumerate(items):
        caption = caption_for(photo, config.caption_policy)
        cards.append(PhotoCard(
            id=photo.id,
            href=photo_href(series, photo.id),
            image=photo.image,
            src=encode_uri(photo.image),
            alt=caption or photo.id,
            caption=caption,
            delay_ms=index * 30,
        ))
    return SeriesView(series=series, title=series, meta=meta, cards=tuple(cards))


def info_rows(photo: Photo, policy: str) -> tuple:
    rows = []
    for field, label in INFO_FIELDS:
        value = getattr(photo, field).strip()
        if not value:
            if policy != "placeholder":
                continue
            value = PLACEHOLDER
        rows.append(InfoRow(field=field, label=label, value=value))
    return tuple(rows)


def nav_link(series: str, items: list[Photo], index: int) -> NavLink:
    if 0 <= index < len(items):
        return NavLink(href=photo_href(series, items[index].id), disabled=False)
    return NavLink()


def build_photo_view(photos: list[Photo], query, config: SiteConfig) -> PhotoView:
    """A single photo with its details and prev/next links within the series."""
    params = parse_query(query)
    series = params.get("s") or config.default_series
    target_id = params.get("id") or ""

    items = photos_in_series(photos, series)
    index = next((i for i, p in enumerate(items) if p.id == target_id), -1)
    if index < 0:
        return PhotoView(series=series, error=PHOTO_NOT_FOUND)

    photo = items[index]
    caption = caption_for(photo, config.caption_policy)
    return PhotoView(
        series=series,
        photo=photo,
        image=photo.image,
        src=encode_uri(photo.image),
        alt=caption or photo.id,
        title=caption or None,
        info=info_rows(photo, config.caption_policy),
        back_href=series_href(series),
        prev=nav_link(series, items, index - 1),
        next=nav_link(series, items, index + 1),
    )


def build_view(page: str, photos: list[Photo], query, config: SiteConfig):
    if page == "index":
        return build_index_view(photos, config)
    if page == "series":
        return build_series_view(photos, query, config)
    if page == "photo":
        return build_photo_view(photos, query, config)
    raise ValueError(f"unknown page mode: {page!r}")


# ---------------------------------------------------------------------------
# Step 6: Image checks
# ---------------------------------------------------------------------------

def image_loads(path: Path) -> bool:
    """True when Pillow can open and verify the file."""
    try:
        with Image.open(path) as img:
            img.verify()
    except (OSError, SyntaxError, ValueError):
        # verify() reports some truncated PNG data as SyntaxError
        return False
    return True


def checked_src(image: str, src: str, site_root: Path) -> str:
    """Return the fallback image in place of `src` when a local file is unreadable."""
    if not image or is_url(image) or image.startswith("data:"):
        return src
    if image_loads(Path(site_root) / image.lstrip("/")):
        return src
    return FALLBACK_IMAGE


def apply_image_fallbacks(view, config: SiteConfig):
    """Probe every image a view references; each image is checked on its own."""
    root = config.site_root
    if isinstance(view, (IndexView, SeriesView)):
        cards = tuple(replace(c, src=checked_src(c.image, c.src, root)) for c in view.cards)
        return replace(view, cards=cards)
    if isinstance(view, PhotoView) and view.photo is not None:
        return replace(view, src=checked_src(view.image, view.src, root))
    return view


# ---------------------------------------------------------------------------
# Step 7: Generate HTML
# ---------------------------------------------------------------------------

SHARED_CSS = """\
*, *::before, *::after { box-sizing: border-box; }
body {
  margin: 0; padding: 24px;
  font-family: "Noto Sans SC", system-ui, -apple-system, sans-serif;
  font-size: 15px; line-height: 1.6;
  background: #faf6ef; color: #4a3f35;
}
a { color: #8b5e34; text-decoration: none; }
h1 { font-size: 1.5em; font-weight: 500; margin: 0 0 4px; }
.subtitle { font-size: 0.9em; color: #8b7a67; margin-bottom: 24px; }
.error { color: #a33; background: #fbeaea; padding: 10px 14px; border-radius: 6px; }
.empty { color: #8b7a67; }

.series-list { display: grid; grid-template-columns: repeat(auto-fill, minmax(240px, 1fr)); gap: 18px; }
.card, .photo-card { animation: rise 0.4s ease both; animation-delay: var(--delay, 0ms); }
.card { display: block; background: #fff; border-radius: 10px; overflow: hidden; }
.card-media img { width: 100%; aspect-ratio: 4 / 3; object-fit: cover; display: block; }
.card-body { padding: 10px 14px; }
.card-body h3 { margin: 0 0 6px; font-weight: 500; }
.meta span { margin-right: 10px; font-size: 0.85em; color: #8b7a67; }
.tag { display: inline-block; font-size: 0.78em; padding: 1px 8px; margin-right: 4px;
  border-radius: 10px; background: #f1e6d6; }

.photo-grid { display: grid; grid-template-columns: repeat(auto-fill, minmax(180px, 1fr)); gap: 6px; }
.photo-card { display: block; position: relative; }
.photo-card img { width: 100%; aspect-ratio: 1; object-fit: cover; display: block; border-radius: 4px; }
.caption { font-size: 0.8em; color: #6b5d50; padding: 4px 2px; }

.nav { display: flex; gap: 16px; margin-bottom: 16px; font-size: 0.9em; }
.nav a[aria-disabled="true"] { color: #bbb; pointer-events: none; }
.media img { max-width: 100%; max-height: 80vh; display: block; border-radius: 4px; }
.info div { margin: 4px 0; }
.info dt { display: inline; color: #8b7a67; margin-right: 8px; }
.info dd { display: inline; margin: 0; }

@keyframes rise { from { opacity: 0; transform: translateY(8px); } to { opacity: 1; transform: none; } }
@media (max-width: 640px) {
  body { padding: 14px; }
  .photo-grid { grid-template-columns: repeat(auto-fill, minmax(110px, 1fr)); }
}
"""

INDEX_TEMPLATE = Template("""\
<!DOCTYPE html>
<html lang="zh-CN">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ site_title }}</title>
<style>{{ css }}</style>
</head>
<body data-page="index">
<h1>{{ site_title }}</h1>
{% if error %}<p class="error" data-error>{{ error }}</p>{% else %}
{% if view.primary_link %}<p class="subtitle"><a href="{{ view.primary_link }}" data-primary-link>开始浏览 &rarr;</a></p>{% endif %}
{% if view.empty %}<p class="empty" data-empty>暂无照片</p>{% endif %}
<div class="series-list" data-series-list>
{% for card in view.cards %}<a class="card" href="{{ card.href }}" style="--delay: {{ card.delay_ms }}ms">
  <div class="card-media"><img src="{{ card.src }}" alt="{{ card.key }}" loading="lazy" data-fallback="{{ fallback }}" onerror="{{ onerror }}"></div>
  <div class="card-body">
    <h3>{{ card.key }}</h3>
    <div class="meta">{% for line in card.meta_lines %}<span>{{ line }}</span>{% endfor %}</div>
    <div class="tag-row">{% for tag in card.tags %}<span class="tag">{{ tag }}</span>{% endfor %}</div>
  </div>
</a>
{% endfor %}
</div>
{% endif %}
</body>
</html>
""")

SERIES_TEMPLATE = Template("""\
<!DOCTYPE html>
<html lang="zh-CN">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ view.title if view else site_title }} — {{ site_title }}</title>
<style>{{ css }}</style>
</head>
<body data-page="series">
<div class="nav"><a href="index.html">&larr; 全部系列</a></div>
{% if error %}<p class="error" data-error>{{ error }}</p>{% else %}
<h1 id="series-title">{{ view.title }}</h1>
<p class="subtitle" id="series-meta">{{ view.meta }}</p>
{% if view.empty %}<p class="empty" data-empty>该系列暂无照片</p>{% endif %}
<div class="photo-grid" data-photo-grid>
{% for card in view.cards %}<a class="photo-card" href="{{ card.href }}" style="--delay: {{ card.delay_ms }}ms">
  <img src="{{ card.src }}" alt="{{ card.alt }}" loading="lazy" data-fallback="{{ fallback }}" onerror="{{ onerror }}">
  {% if card.caption %}<div class="caption">{{ card.caption }}</div>{% endif %}
</a>
{% endfor %}
</div>
{% endif %}
</body>
</html>
""")

PHOTO_TEMPLATE = Template("""\
<!DOCTYPE html>
<html lang="zh-CN">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>{{ (view.title or view.photo.id) if view and view.photo else site_title }} — {{ site_title }}</title>
<style>{{ css }}</style>
</head>
<body data-page="photo">
{% if error %}
<div class="nav"><a href="index.html">&larr; 全部系列</a></div>
<p class="error" data-error>{{ error }}</p>
{% else %}
<div class="nav">
  <a id="back-to-series" href="{{ view.back_href }}">&larr; 返回系列</a>
  <a id="prev-photo" href="{{ view.prev.href }}"{% if view.prev.disabled %} aria-disabled="true"{% endif %}>&larr; 上一张</a>
  <a id="next-photo" href="{{ view.next.href }}"{% if view.next.disabled %} aria-disabled="true"{% endif %}>下一张 &rarr;</a>
</div>
<h1 id="photo-title">{{ view.title or site_title }}</h1>
<div class="media">
  <img id="photo-image" src="{{ view.src }}" alt="{{ view.alt }}" data-fallback="{{ fallback }}" onerror="{{ onerror }}">
</div>
<dl class="info">
{% for row in view.info %}  <div><dt>{{ row.label }}</dt><dd id="photo-{{ row.field }}">{{ row.value }}</dd></div>
{% endfor %}</dl>
{% endif %}
</body>
</html>
""")

PAGE_TEMPLATES = {"index": INDEX_TEMPLATE, "series": SERIES_TEMPLATE, "photo": PHOTO_TEMPLATE}


def render_view(page: str, view, error: Optional[str] = None) -> str:
    """Apply a view model (or a load error) to the page shell for `page`."""
    if page not in PAGE_TEMPLATES:
        raise ValueError(f"unknown page mode: {page!r}")
    return PAGE_TEMPLATES[page].render(
        view=view,
        error=error,
        site_title=SITE_TITLE,
        css=Markup(SHARED_CSS),
        fallback=FALLBACK_IMAGE,
        onerror=IMG_ONERROR,
    )


def load_view(page: str, query, config: SiteConfig, client: Optional[httpx.Client] = None):
    """Run one page load: fetch the CSV and build the view.

    Returns (view, error). A failed fetch gives (None, message); a photo that
    cannot be found gives the view together with its not-found message.
    """
    if page not in PAGE_MODES:
        raise ValueError(f"unknown page mode: {page!r}")
    try:
        photos = load_photos(config, client)
    except GalleryLoadError as e:
        return None, str(e)

    view = build_view(page, photos, query, config)
    if config.check_images:
        view = apply_image_fallbacks(view, config)
    return view, getattr(view, "error", None)


def render_page(page: str, query, config: SiteConfig, client: Optional[httpx.Client] = None) -> str:
    view, error = load_view(page, query, config, client)
    return render_view(page, view, error)


# ---------------------------------------------------------------------------
# Serve
# ---------------------------------------------------------------------------

PAGE_ROUTES = {
    "/": "index",
    "/index.html": "index",
    "/series.html": "series",
    "/photo.html": "photo",
}


class GalleryHandler(http.server.SimpleHTTPRequestHandler):
    # Routes:
    #   / , /index.html   -> index page
    #   /series.html      -> series page (?s=)
    #   /photo.html       -> photo page (?s=&id=)
    #   anything else     -> static file under site_root (photos, csv)
    def __init__(self, *args, config: SiteConfig, **kwargs):
        self.config = config
        super().__init__(*args, directory=str(config.site_root), **kwargs)

    def do_GET(self):
        parsed = urlparse(self.path)
        page = PAGE_ROUTES.get(parsed.path)
        if page is None:
            return super().do_GET()

        body = render_page(page, parsed.query, self.config).encode("utf-8")
        self.send_response(200)
        self.send_header("Content-Type", "text/html; charset=utf-8")
        self.send_header("Cache-Control", "no-store")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)


def serve(config: SiteConfig, host: str = "127.0.0.1", port: int = 8000):
    handler = partial(GalleryHandler, config=config)
    with http.server.ThreadingHTTPServer((host, port), handler) as server:
        print(f"Serving {config.site_root} at http://{host}:{port}/")
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            print("\nStopped.")


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------

def config_from_args(args) -> SiteConfig:
    return SiteConfig(
        csv_path=args.csv,
        photos_root=args.photos_root,
        default_series=args.default_series,
        caption_policy=args.captions,
        site_root=Path(args.root),
        check_images=args.check_images,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="csvgallery", description="Render a photo gallery from a CSV manifest.")
    parser.add_argument("--root", default=".", help="site directory that csv and photo paths resolve against")
    parser.add_argument("--csv", default=DEFAULT_CSV_PATH, help="CSV path under --root, or an http(s) URL")
    parser.add_argument("--photos-root", default=DEFAULT_PHOTOS_ROOT, help="prefix for derived image paths")
    parser.add_argument("--default-series", default=DEFAULT_SERIES)
    parser.add_argument("--captions", choices=CAPTION_POLICIES, default="omit",
                        help="omit blank fields, or show a placeholder for them")
    parser.add_argument("--check-images", action="store_true",
                        help="swap unreadable local images for the fallback graphic")

    sub = parser.add_subparsers(dest="command", required=True)

    render = sub.add_parser("render", help="render one page to stdout or a file")
    render.add_argument("page", choices=PAGE_MODES)
    render.add_argument("--query", default="", help='query string, e.g. "s=Trip&id=p1"')
    render.add_argument("--out", help="write the page here instead of stdout")

    srv = sub.add_parser("serve", help="serve the gallery over HTTP")
    srv.add_argument("--host", default="127.0.0.1")
    srv.add_argument("--port", type=int, default=8000)
    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    if args.command == "serve":
        serve(config, args.host, args.port)
        return 0

    view, error = load_view(args.page, args.query, config)
    page_html = render_view(args.page, view, error)
    if args.out:
        Path(args.out).write_text(page_html, encoding="utf-8")
        print(f"  Wrote {args.out}", file=sys.stderr)
    else:
        sys.stdout.write(page_html)
    if error:
        print(f"  {error}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
