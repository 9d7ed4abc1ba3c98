from casebot.apps.cli import build_parser, display_rankings, display_results, main
from casebot.utils.schemas import RankResult, SearchPage
from tests.conftest import hits


def test_analyze_arguments():
    args = build_parser().parse_args(
        ["analyze", "refund", "of", "ITC", "--context", "Export refund denied", "--court", "High Court",
         "--court", "Tribunal", "--year-range", "last_3_years", "--headnote-only", "--count", "45"]
    )
    assert args.keywords == ["refund", "of", "ITC"]
    assert args.court == ["High Court", "Tribunal"]
    assert args.yearRange == "last_3_years"
    assert args.headnote_only is True
    assert args.count == 45


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "search-download" in capsys.readouterr().out


def test_download_all_without_previous_search(monkeypatch, tmp_path, capsys):
    monkeypatch.setattr("casebot.apps.cli.settings.LAST_SEARCH_FILE", str(tmp_path / "last_search.json"))
    assert main(["download-all"]) == 1
    assert "No previous search results" in capsys.readouterr().out


def test_display_results(capsys):
    display_results(SearchPage(results=hits(2, start=21), total_count=45, page=2, page_size=20))
    out = capsys.readouterr().out
    assert "Found 45 results" in out
    assert "21. Case 21" in out
    assert "Page 2/3" in out


def test_display_rankings(capsys):
    display_rankings(
        RankResult(
            rankings=[{"id": "1", "heading": "ABC v. XYZ", "score": 80, "reason": "Same facts"}],
            recommendation="Rely on ABC.",
        )
    )
    out = capsys.readouterr().out
    assert "█" * 16 + "░" * 4 + " 80/100" in out
    assert "Recommendation: Rely on ABC." in out


def test_display_rankings_falls_back_to_raw(capsys):
    display_rankings(RankResult(raw="Plain answer"))
    assert "Plain answer" in capsys.readouterr().out
