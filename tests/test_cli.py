"""
Tests for the command line entry point.
"""
import json

from cli import main


def test_process_prints_deal_summary(dd_folder, processed_root, capsys):
    code = main(["process", str(dd_folder), "--output", str(processed_root)])
    out = capsys.readouterr().out

    assert code == 0
    assert "Deal ID: sunset-apartments-" in out
    assert "Units: 10 (9 occupied, 1 vacant)" in out
    assert "Occupancy: 90.0%" in out
    assert any(processed_root.iterdir())


def test_advance_runs_stages(deal_dir_factory, pipeline_root, capsys):
    deal_path = deal_dir_factory(asking_price=5000000, occupancy_rate=95.0)
    code = main(["advance", str(deal_path), "2", "--pipeline-root", str(pipeline_root)])
    out = capsys.readouterr().out

    assert code == 0
    assert "Stage 1 (Strategic Qualification): ADVANCE" in out
    assert "Stage 2 (Market Intelligence): ADVANCE" in out

    code = main(["advance", str(deal_path), "1", "--pipeline-root", str(pipeline_root)])
    assert code == 0
    assert "Nothing to do" in capsys.readouterr().out


def test_advance_rejects_bad_stage(deal_dir_factory, capsys):
    code = main(["advance", str(deal_dir_factory()), "9"])
    assert code == 2
    assert "stage must be 1-6" in capsys.readouterr().err


def test_status_and_summary(deal_dir_factory, pipeline_root, capsys):
    deal_path = deal_dir_factory(asking_price=5000000, occupancy_rate=95.0)

    assert main(["status", str(deal_path), "--pipeline-root", str(pipeline_root)]) == 0
    assert "No audit log yet" in capsys.readouterr().out

    main(["advance", str(deal_path), "1", "--pipeline-root", str(pipeline_root)])
    capsys.readouterr()

    assert main(["status", str(deal_path), "--pipeline-root", str(pipeline_root)]) == 0
    status = json.loads(capsys.readouterr().out)
    assert status['stage'] == 1
    assert status['status'] == "ACTIVE"

    assert main(["summary", str(deal_path), "--pipeline-root", str(pipeline_root)]) == 0
    assert "# Audit Trail Summary" in capsys.readouterr().out


def test_deal_id_resolves_under_custom_output(dd_folder, processed_root, pipeline_root, capsys):
    main(["process", str(dd_folder), "--output", str(processed_root)])
    out = capsys.readouterr().out
    deal_id = next(line.split(": ", 1)[1] for line in out.splitlines() if line.startswith("Deal ID: "))
    options = ["--output", str(processed_root), "--pipeline-root", str(pipeline_root)]

    assert main(["status", deal_id] + options) == 0
    assert "No audit log yet" in capsys.readouterr().out

    assert main(["advance", deal_id, "1"] + options) == 0
    assert "Stage 1 (Strategic Qualification)" in capsys.readouterr().out

    assert main(["summary", deal_id] + options) == 0
    assert "Strategic Qualification (Stage 1)" in capsys.readouterr().out


def test_missing_deal_is_an_error(tmp_path, pipeline_root, capsys):
    code = main(["status", str(tmp_path / "missing"), "--pipeline-root", str(pipeline_root)])
    assert code == 1
    assert "Error: Deal not found" in capsys.readouterr().err


def test_move_copies_deal(deal_dir_factory, pipeline_root, capsys):
    deal_path = deal_dir_factory(path=pipeline_root / "A-initial-intake" / "not-started" / "test-deal")
    code = main([
        "move", str(deal_path), "A-initial-intake", "B-preliminary-analysis", "ADVANCE",
        "--pipeline-root", str(pipeline_root),
    ])

    assert code == 0
    assert "Moved to" in capsys.readouterr().out
    assert (pipeline_root / "B-preliminary-analysis" / "not-started" / "test-deal").is_dir()


def test_move_with_unknown_decision_fails(deal_dir_factory, pipeline_root, capsys):
    deal_path = deal_dir_factory(path=pipeline_root / "A-initial-intake" / "not-started" / "test-deal")
    code = main([
        "move", str(deal_path), "A-initial-intake", "B-preliminary-analysis", "MAYBE",
        "--pipeline-root", str(pipeline_root),
    ])
    assert code == 1
    assert "Unknown decision" in capsys.readouterr().err


def test_pipeline_on_empty_root(pipeline_root, capsys):
    assert main(["pipeline", "--pipeline-root", str(pipeline_root)]) == 0
    assert "Processed 0 deal(s), 0 failed" in capsys.readouterr().out
