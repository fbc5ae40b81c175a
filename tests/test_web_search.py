import asyncio

import aiohttp

from pcru_faq.exceptions import UpstreamError
from pcru_faq.engines.web_search_engine import GoogleSearchFallback, NullWebSearch, parse_google_result

RESULT_PAGE = (
    '<html><body><a href="/url?q=https://www.pcru.ac.th/%E0%B8%AB%E0%B8%AD&amp;sa=U">PCRU</a>'
    '<div class="BNeawe s3v9rd AP7Wnd"><span>หอพัก</span> มหาวิทยาลัย &amp; บริการ</div>'
    "</body></html>"
)


class StubSearch(GoogleSearchFallback):
    def __init__(self, page=None, error=None, delay=0.0, timeout=1.0):
        super().__init__(timeout=timeout)
        self.page = page
        self.error = error
        self.delay = delay

    async def _fetch(self, query):
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.page


def test_parse_first_result_link_and_snippet():
    result = parse_google_result(RESULT_PAGE)
    assert result.success
    assert result.link == "https://www.pcru.ac.th/หอ"
    assert result.snippet == "หอพัก มหาวิทยาลัย & บริการ"


def test_parse_nested_snippet_markup_and_single_quoted_href():
    page = (
        "<html><body><div><a data-ved='x>y' href='/url?q=https://www.pcru.ac.th/a%20b&amp;sa=U'>"
        "<h3>PCRU</h3></a></div>"
        '<div class="kCrYT"><div class="BNeawe s3v9rd AP7Wnd" data-note="1 > 0">'
        "<div><span class=\"r0bn4c\">12 ม.ค. 2567</span> · <b>ทุน</b>การศึกษา&nbsp;ประจำปี</div>"
        "</div></div>"
        '<a href="/url?q=https://second.example/&amp;sa=U">second</a>'
        "</body></html>"
    )
    result = parse_google_result(page)
    assert result.link == "https://www.pcru.ac.th/a b"
    assert result.snippet == "12 ม.ค. 2567 · ทุน การศึกษา\xa0ประจำปี"


def test_parse_result_without_snippet():
    result = parse_google_result('<a href="/url?q=https://www.pcru.ac.th/&amp;sa=U">PCRU</a>')
    assert result.success
    assert result.snippet == ""


def test_parse_anchor_without_target_is_unsuccessful():
    assert not parse_google_result('<a href="/url?q=&amp;sa=U">empty</a>').success
    assert not parse_google_result('<a href="/search?q=pcru">internal</a>').success


def test_parse_page_without_results():
    assert not parse_google_result("<html>no results</html>").success
    assert not parse_google_result("").success


def test_search_returns_parsed_result():
    result = asyncio.run(StubSearch(page=RESULT_PAGE).search("หอพัก"))
    assert result.success
    assert result.link.startswith("https://www.pcru.ac.th/")


def test_network_error_is_unsuccessful():
    result = asyncio.run(StubSearch(error=aiohttp.ClientConnectionError("refused")).search("หอพัก"))
    assert not result.success


def test_timeout_is_unsuccessful():
    result = asyncio.run(StubSearch(page=RESULT_PAGE, delay=0.5, timeout=0.05).search("หอพัก"))
    assert not result.success


def test_blank_query_is_not_sent():
    stub = StubSearch(error=AssertionError("should not fetch"))
    assert not asyncio.run(stub.search("  ")).success


def test_null_provider_never_finds_anything():
    assert not asyncio.run(NullWebSearch().search("anything")).success


def test_blocked_search_page_is_unsuccessful():
    result = asyncio.run(StubSearch(error=UpstreamError("search page returned HTTP 429")).search("หอพัก"))
    assert not result.success
