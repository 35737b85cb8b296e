"""Whole page loads: fetch the CSV, build the view, render HTML."""

import httpx
import pytest

from csvgallery import (
    CSV_LOAD_ERROR,
    FALLBACK_IMAGE,
    PHOTO_NOT_FOUND,
    GalleryLoadError,
    SiteConfig,
    fetch_csv,
    load_csv_text,
    load_photos,
    load_view,
    render_page,
    render_view,
)

from conftest import TRIP_CSV

CSV_URL = "https://example.test/data/photos.csv"


def mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestFetch:
    def test_fetch_bypasses_caches(self):
        seen = {}

        def handler(request):
            seen.update(request.headers)
            return httpx.Response(200, content=TRIP_CSV.encode("utf-8"))

        assert fetch_csv(CSV_URL, mock_client(handler)) == TRIP_CSV
        assert seen["cache-control"] == "no-store"
        assert seen["pragma"] == "no-cache"

    @pytest.mark.parametrize("status", [404, 403, 500])
    def test_non_success_status_raises(self, status):
        client = mock_client(lambda request: httpx.Response(status, text="nope"))
        with pytest.raises(GalleryLoadError) as exc:
            fetch_csv(CSV_URL, client)
        assert str(exc.value) == CSV_LOAD_ERROR

    def test_transport_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GalleryLoadError):
            fetch_csv(CSV_URL, mock_client(handler))

    def test_body_is_decoded_as_utf8_with_bom(self):
        body = "\ufeffid,series\n照片1,旅行\n".encode("utf-8")
        client = mock_client(lambda request: httpx.Response(200, content=body))
        photos = load_photos(SiteConfig(csv_path=CSV_URL), client)
        assert [(p.id, p.series) for p in photos] == [("照片1", "旅行")]


class TestLocalFile:
    def test_reads_csv_under_site_root(self, trip_site):
        assert load_csv_text(trip_site) == TRIP_CSV

    def test_missing_file_raises(self, tmp_path):
        with pytest.raises(GalleryLoadError):
            load_csv_text(SiteConfig(site_root=tmp_path))

    def test_invalid_bytes_do_not_fail(self, tmp_path):
        (tmp_path / "m.csv").write_bytes(b"id\np\xff1\n")
        photos = load_photos(SiteConfig(csv_path="m.csv", site_root=tmp_path))
        assert photos[0].id == "p\ufffd1"


class TestRenderPage:
    def test_index(self, trip_site):
        html = render_page("index", "", trip_site)
        assert html.count('class="card"') == 1
        assert 'href="series.html?s=Trip"' in html
        assert "共 2 张" in html
        assert '<span class="tag">照片档案</span><span class="tag">点击进入</span>' in html
        assert "data-error" not in html

    def test_empty_index_shows_empty_state(self, make_site):
        html = render_page("index", "", make_site("id,series\n"))
        assert "data-empty" in html
        assert 'class="card"' not in html
        assert "data-primary-link" not in html

    def test_series(self, trip_site):
        html = render_page("series", "s=Trip", trip_site)
        assert html.count('class="photo-card"') == 2
        assert "共 2 张 · 时间 2020 · 地点 Paris" in html
        assert 'src="./Trip/p1.jpg"' in html
        assert 'src="./Trip/p2.jpg"' in html

    def test_photo(self, trip_site):
        html = render_page("photo", "s=Trip&id=p1", trip_site)
        assert 'id="photo-image" src="./Trip/p1.jpg"' in html
        assert 'id="prev-photo" href="#" aria-disabled="true"' in html
        assert 'id="next-photo" href="photo.html?s=Trip&amp;id=p2"' in html
        assert '<dd id="photo-place">Paris</dd>' in html
        assert 'id="photo-highlight"' not in html

    def test_photo_not_found(self, trip_site):
        view, error = load_view("photo", "s=Trip&id=zzz", trip_site)
        assert error == PHOTO_NOT_FOUND
        html = render_view("photo", view, error)
        assert PHOTO_NOT_FOUND in html
        assert "photo-image" not in html

    def test_failed_fetch_renders_only_the_error(self):
        client = mock_client(lambda request: httpx.Response(404))
        config = SiteConfig(csv_path=CSV_URL)
        for page in ("index", "series", "photo"):
            html = render_page(page, "s=Trip&id=p1", config, client)
            assert CSV_LOAD_ERROR in html
            assert 'class="card"' not in html
            assert 'class="photo-card"' not in html

    def test_load_view_reports_fetch_error(self, tmp_path):
        assert load_view("series", "", SiteConfig(site_root=tmp_path)) == (None, CSV_LOAD_ERROR)

    def test_images_carry_the_fallback_hook(self, trip_site):
        html = render_page("series", "s=Trip", trip_site)
        assert html.count('onerror="this.onerror=null;this.src=this.dataset.fallback"') == 2
        assert 'data-fallback="data:image/svg+xml;utf8,%3Csvg' in html

    def test_text_is_escaped(self, make_site):
        config = make_site('id,series,highlight\np1,"<b>x</b>","a & <i>b</i>"\n')
        html = render_page("series", "s=%3Cb%3Ex%3C%2Fb%3E", config)
        assert "<b>x</b>" not in html
        assert "&lt;b&gt;x&lt;/b&gt;" in html
        assert "a &amp; &lt;i&gt;b&lt;/i&gt;" in html

    def test_unknown_page_mode(self, trip_site):
        with pytest.raises(ValueError):
            load_view("tags", "", trip_site)


def test_fallback_image_is_inline_svg():
    assert FALLBACK_IMAGE.startswith("data:image/svg+xml;utf8,%3Csvg")
    assert "%E5%9B%BE%E7%89%87%E5%8A%A0%E8%BD%BD%E5%A4%B1%E8%B4%A5" in FALLBACK_IMAGE
