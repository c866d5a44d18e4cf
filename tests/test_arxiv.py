import pytest
import respx
from httpx import ConnectError, Response

from paperfeed.arxiv import FeedError, build_search_query, fetch_arxiv_papers, parse_feed
from paperfeed.constants import ARXIV_API_URL

ATOM = """<?xml version="1.0" encoding="UTF-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>arXiv Query</title>
  <entry>
    <id>http://arxiv.org/abs/2401.00001v1</id>
    <updated>2024-01-02T00:00:00Z</updated>
    <published>2024-01-01T00:00:00Z</published>
    <title>Sparse   Attention
      for Long Contexts</title>
    <summary>  We study sparse
      attention.  </summary>
    <author><name>Jane Smith</name></author>
    <author><name>John Doe</name></author>
    <link href="http://arxiv.org/abs/2401.00001v1" rel="alternate" type="text/html"/>
    <link title="pdf" href="http://arxiv.org/pdf/2401.00001v1" rel="related" type="application/pdf"/>
    <category term="cs.CL" scheme="http://arxiv.org/schemas/atom"/>
    <category term="cs.LG" scheme="http://arxiv.org/schemas/atom"/>
  </entry>
  <entry>
    <id>http://arxiv.org/abs/hep-th/9901001v2</id>
    <published>1999-01-01T00:00:00Z</published>
    <title>Old style id</title>
    <summary>Strings.</summary>
  </entry>
</feed>
"""


def test_build_search_query_default():
    query = build_search_query()
    assert query.startswith("cat:cs.AI OR cat:cs.LG")
    assert "cat:stat.ML" in query


def test_build_search_query_category_and_terms():
    assert build_search_query(category="cs.CV") == "cat:cs.CV"
    assert (
        build_search_query(category="cs.CL", search=" large  language ")
        == "(cat:cs.CL) AND all:large AND all:language"
    )


def test_parse_feed():
    papers = parse_feed(ATOM)
    assert [p.id for p in papers] == ["2401.00001v1", "hep-th/9901001v2"]

    paper = papers[0]
    assert paper.title == "Sparse Attention for Long Contexts"
    assert paper.abstract == "We study sparse attention."
    assert paper.authors == ("Jane Smith", "John Doe")
    assert paper.categories == ("cs.CL", "cs.LG")
    assert paper.pdf_url == "http://arxiv.org/pdf/2401.00001v1"
    assert paper.arxiv_url == "http://arxiv.org/abs/2401.00001v1"
    assert paper.published == "2024-01-01T00:00:00Z"
    assert paper.summary is None

    assert papers[1].pdf_url is None
    assert papers[1].authors == ()


def test_parse_feed_empty():
    assert parse_feed("") == []
    assert parse_feed("<feed xmlns='http://www.w3.org/2005/Atom'></feed>") == []


@pytest.mark.asyncio
@respx.mock
async def test_fetch_arxiv_papers_sends_params():
    route = respx.get(ARXIV_API_URL).mock(return_value=Response(200, text=ATOM))

    papers = await fetch_arxiv_papers(max_results=50, start=100, category="cs.RO")

    assert len(papers) == 2
    params = route.calls.last.request.url.params
    assert params["search_query"] == "cat:cs.RO"
    assert params["start"] == "100"
    assert params["max_results"] == "50"
    assert params["sortBy"] == "submittedDate"
    assert params["sortOrder"] == "descending"


@pytest.mark.asyncio
@respx.mock
async def test_fetch_arxiv_papers_http_error():
    respx.get(ARXIV_API_URL).mock(return_value=Response(503))
    with pytest.raises(FeedError, match="503"):
        await fetch_arxiv_papers()


@pytest.mark.asyncio
@respx.mock
async def test_fetch_arxiv_papers_transport_error():
    respx.get(ARXIV_API_URL).mock(side_effect=ConnectError("refused"))
    with pytest.raises(FeedError):
        await fetch_arxiv_papers()
