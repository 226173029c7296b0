from __future__ import annotations

from .config import SourceConfig

# Built-in boards used when no sources file is configured.
DEFAULT_SOURCES: tuple[SourceConfig, ...] = (
    SourceConfig(
        name="Remotive",
        url="https://remotive.com/remote-jobs",
        item_selector=".job-tile",
        title_selector="h2, h3, .job-title, .job-tile-title, a .job-title",
        link_selector="a",
        company_selector=".company, .company-name, .job-company, .job-tile-company, .job-tile .company-name",
        location_selector=".location, .job-location, .job-tile-location, .job-tile .location",
        limit=8,
    ),
    SourceConfig(
        name="Remote OK",
        url="https://remoteok.com/remote-dev-jobs",
        item_selector="tr.job",
        title_selector="h2, .position, .job-title, td.company_and_position h2",
        link_selector="a.preventLink",
        company_selector="h3",
        location_selector=".location",
        limit=8,
    ),
    SourceConfig(
        name="We Work Remotely",
        url="https://weworkremotely.com/remote-jobs",
        item_selector="section.jobs li:not(.view-all):not(.category)",
        title_selector="a span.title",
        link_selector="a[href^='/remote-jobs/']",
        company_selector="span.company, .company",
        location_selector="span.region, .region, .location",
        limit=8,
        title_remove_patterns=(
            r"\bFeatured\b",
            r"\bTop\s*100\b",
            r"\bFull[- ]Time\b",
            r"\bPart[- ]Time\b",
            r"\bContract\b",
            r"\bTemporary\b",
            r"\b\d+d\b",
            r"\bNew\b",
            r"\bRemote\b",
            "Anywhere in the World",
        ),
    ),
)
