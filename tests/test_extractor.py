# tests/test_extractor.py
import re

import pytest

from modules.job_digest.lib.config import SourceConfig
from modules.job_digest.lib.defaults import DEFAULT_SOURCES
from modules.job_digest.lib.errors import SourceUnavailable
from modules.job_digest.lib.extractor import Extractor, clean_title, strip_after
from modules.job_digest.lib.pages.base import RenderedPage


def _page(url, html):
    return RenderedPage(url=url, html=html)


# ----------------------------------------------------------------------
# Title cleaning
# ----------------------------------------------------------------------
def test_clean_title_strips_marker_and_repeated_word():
    assert clean_title("Senior Senior Engineer • Remote", ["•"]) == "Senior Engineer"


def test_clean_title_removes_pattern_matches():
    patterns = [re.compile(r"\bFeatured\b", re.IGNORECASE)]
    assert clean_title("Featured Backend Engineer", (), patterns) == "Backend Engineer"


def test_clean_title_collapses_whitespace_first():
    assert clean_title("  Data\n\t  Engineer   |  Acme ", ["|"]) == "Data Engineer"


def test_strip_after_applies_markers_in_order():
    assert strip_after("A | B • C", ["•", "|"]) == "A"
    assert strip_after("no markers here", ["•"]) == "no markers here"


def test_invalid_remove_pattern_is_skipped(caplog):
    sc = SourceConfig(name="Broken", title_remove_patterns=("(unclosed", r"\bFeatured\b"))
    assert [p.pattern for p in sc.compiled_remove_patterns] == [r"\bFeatured\b"]
    assert "skipping invalid title pattern" in caplog.text


# ----------------------------------------------------------------------
# Field resolution
# ----------------------------------------------------------------------
def test_extract_board_rows(make_board, make_source):
    sc = make_source("Alpha Board")
    html = make_board([
        ("Backend Engineer", "/jobs/a1", "Acme", "Remote"),
        ("Platform Engineer | Full-time", "https://other.example.org/x", " Hooli\n Inc ", "EU"),
    ])
    records = Extractor().extract(_page(sc.url, html), sc)

    assert [r.title for r in records] == ["Backend Engineer", "Platform Engineer"]
    assert records[0].link == "https://alpha.example.com/jobs/a1"
    assert records[1].link == "https://other.example.org/x"
    assert records[1].company == "Hooli Inc"
    assert records[0].location == "Remote"
    assert {r.source for r in records} == {"Alpha Board"}


def test_extract_never_exceeds_limit(make_board, make_source):
    sc = make_source("Alpha Board", limit=2)
    rows = [(f"Engineer {i}", f"/jobs/{i}", "Acme", "Remote") for i in range(5)]
    records = Extractor().extract(_page(sc.url, make_board(rows)), sc)
    assert [r.link for r in records] == ["https://alpha.example.com/jobs/0", "https://alpha.example.com/jobs/1"]


def test_extract_drops_rows_without_title_and_link(make_board, make_source):
    sc = make_source("Alpha Board")
    rows = [
        (None, None, "Ghost Co", "Nowhere"),
        ("Only Title", None, None, None),
        (None, "/jobs/only-link", None, None),
    ]
    records = Extractor().extract(_page(sc.url, make_board(rows)), sc)

    assert len(records) == 2
    assert records[0].title == "Only Title" and records[0].link == ""
    # Title falls back to the link's own text
    assert records[1].title == "Apply" and records[1].link == "https://alpha.example.com/jobs/only-link"


def test_extract_zero_containers_raises_source_unavailable(make_source):
    sc = make_source("Alpha Board", item_selector="article.posting")
    with pytest.raises(SourceUnavailable) as exc_info:
        Extractor().extract(_page(sc.url, "<html><body><p>Nothing</p></body></html>"), sc)

    err = exc_info.value
    assert (err.source, err.url, err.selector) == ("Alpha Board", sc.url, "article.posting")
    assert "article.posting" in str(err)


def test_links_resolve_against_base_href(make_board, make_source):
    sc = make_source("Alpha Board")
    html = make_board([("Backend Engineer", "a1", None, None)], base="https://cdn.example.net/board/")
    (record,) = Extractor().extract(_page(sc.url, html), sc)
    assert record.link == "https://cdn.example.net/board/a1"


def test_title_fallback_chain_uses_link_attributes(make_source):
    sc = make_source("Alpha Board")
    html = """
    <ul>
      <li class="job"><a href="/j/1"><strong>Staff Engineer</strong></a></li>
      <li class="job"><a href="/j/2" aria-label="Site Reliability Engineer"></a></li>
      <li class="job"><a href="/j/3" title="Security Engineer"></a></li>
    </ul>
    """
    records = Extractor().extract(_page(sc.url, html), sc)
    assert [r.title for r in records] == ["Staff Engineer", "Site Reliability Engineer", "Security Engineer"]


def test_company_and_location_fallbacks(make_source):
    sc = make_source("Alpha Board", company_selector=".employer", location_selector="")
    html = """
    <ul>
      <li class="job" data-company="Data Attr Co" data-job-location="Remote (US)">
        <h2>Engineer</h2><a href="/j/1">Apply</a>
      </li>
      <li class="job">
        <h2>Designer</h2><a href="/j/2">Apply</a>
        <div class="job-company-name">Generic Co</div><span class="region">Europe</span>
      </li>
    </ul>
    """
    first, second = Extractor().extract(_page(sc.url, html), sc)
    assert (first.company, first.location) == ("Data Attr Co", "Remote (US)")
    assert (second.company, second.location) == ("Generic Co", "Europe")


def test_selector_chain_first_non_empty_match_wins(make_source):
    sc = make_source("Alpha Board", title_selector="h3, h2")
    html = '<ul><li class="job"><h3> </h3><h2>Backend Engineer</h2><a href="/j">x</a></li></ul>'
    (record,) = Extractor().extract(_page(sc.url, html), sc)
    assert record.title == "Backend Engineer"


def test_we_work_remotely_markup_with_builtin_source():
    wwr = next(s for s in DEFAULT_SOURCES if s.name == "We Work Remotely")
    html = """
    <section class="jobs"><ul>
      <li>
        <a href="/remote-jobs/acme-senior-developer">
          <span class="title">Featured Senior Senior Developer</span>
          <span class="company">Acme</span>
          <span class="region">Anywhere in the World</span>
        </a>
      </li>
      <li class="view-all"><a href="/categories/remote-programming-jobs">View all 120 jobs</a></li>
    </ul></section>
    """
    records = Extractor().extract(_page(wwr.url, html), wwr)

    assert len(records) == 1
    (record,) = records
    assert record.title == "Senior Developer"
    assert record.link == "https://weworkremotely.com/remote-jobs/acme-senior-developer"
    assert record.company == "Acme"
    assert record.location == "Anywhere in the World"
    assert record.source == "We Work Remotely"


def test_link_falls_back_to_title_element_href(make_source):
    sc = make_source("Alpha Board", title_selector="a.title", link_selector="a.apply")
    html = '<ul><li class="job"><a class="title" href="/jobs/9">Data Engineer</a></li></ul>'
    (record,) = Extractor().extract(_page(sc.url, html), sc)
    assert record.title == "Data Engineer"
    assert record.link == "https://alpha.example.com/jobs/9"


def test_repeated_word_collapse_is_ascii_only():
    assert clean_title("Senior senior Engineer") == "Senior Engineer"
    assert clean_title("Café Café Manager") == "Café Café Manager"
