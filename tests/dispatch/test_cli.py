"""
End-to-end tests: the dispatcher runs a fake ``<tool>-orig`` script that logs
its arguments and exits with ``$TOOL_EXIT``.
"""
import pytest
import yaml

from sradispatch._settings import DispatchConfig, DispatchContext
from sradispatch.cli import expand_option_files, extract_location, main, parse_tool_args, runas
from sradispatch.exceptions import SourcesExhaustedError, ToolFailedError
from sradispatch.tools import TOOLS, ToolID

FASTERQ = TOOLS[ToolID.FASTERQ_DUMP]


# ---------- argument intake ----------
def test_extract_location():
    args, location = extract_location(["--location", "ncbi", "SRR1", "--location=s3.us-east-1", "-p"])
    assert args == ["SRR1", "-p"]
    assert location == "s3.us-east-1"


def test_extract_location_needs_value():
    with pytest.raises(ValueError):
        extract_location(["SRR1", "--location"])


def test_parse_tool_args():
    params, accessions = parse_tool_args(
        FASTERQ, ["-p", "SRR000001", "-o", "out.fastq", "--threads=8", "--split-3", "SRR000002"])
    assert list(params) == [("--progress", None), ("--outfile", "out.fastq"),
                            ("--threads", "8"), ("--split-3", None)]
    assert accessions == ["SRR000001", "SRR000002"]


def test_parse_double_dash_ends_options():
    params, accessions = parse_tool_args(FASTERQ, ["--split-3", "--", "-odd-name"])
    assert params.names() == ["--split-3"]
    assert accessions == ["-odd-name"]


def test_parse_repeated_flag_and_value():
    params, _ = parse_tool_args(FASTERQ, ["-p", "--progress", "SRR1"])
    assert params.names() == ["--progress"]
    with pytest.raises(ValueError):
        parse_tool_args(FASTERQ, ["-e", "2", "--threads", "4", "SRR1"])
    with pytest.raises(ValueError):
        parse_tool_args(FASTERQ, ["SRR1", "--outfile"])


@pytest.mark.parametrize("args", [[], ["--help"], ["-h", "SRR1"]])
def test_help_requested(args):
    assert parse_tool_args(FASTERQ, args) is None


def test_option_file_is_spliced(tmp_path):
    listing = tmp_path / "SraAccList.txt"
    listing.write_text("SRR000001\nSRR000002\n")
    assert expand_option_files(["-p", f"--option-file={listing}", "SRR000003"]) == [
        "-p", "SRR000001", "SRR000002", "SRR000003"]
    _, accessions = parse_tool_args(FASTERQ, ["--option-file", str(listing)])
    assert accessions == ["SRR000001", "SRR000002"]


# ---------- running the fake tool ----------
def _context(tmp_path, name="fasterq-dump"):
    return DispatchContext.from_argv0(str(tmp_path / name))


def test_runs_each_accession(make_tool, tool_log, tmp_path, capsys):
    make_tool("fasterq-dump-orig")

    code = runas(ToolID.FASTERQ_DUMP, ["--split-3", "SRR000001", "SRR000002"],
                 _context(tmp_path), DispatchConfig())

    assert code == 0
    assert [e["argv"] for e in tool_log()] == [["--split-3", "SRR000001"], ["--split-3", "SRR000002"]]
    assert "All runs were processed successfully" in capsys.readouterr().out


def test_outfile_split_per_run(make_tool, tool_log, tmp_path, capsys):
    make_tool("fasterq-dump-orig")

    runas(ToolID.FASTERQ_DUMP, ["-o", "all.fastq", "SRR000001", "SRR000002"],
          _context(tmp_path), DispatchConfig())

    out = capsys.readouterr().out
    assert "\tSRR000001.fastq\n\tSRR000002.fastq" in out
    assert [e["argv"] for e in tool_log()] == [
        ["--outfile", "SRR000001.fastq", "SRR000001"],
        ["--outfile", "SRR000002.fastq", "SRR000002"],
    ]


def test_falls_back_to_next_mirror(make_tool, tool_log, tmp_path, monkeypatch):
    make_tool("fasterq-dump-orig")
    config = DispatchConfig(mirrors=[
        {"name": "first", "priority": 1, "env": {"SOURCE": "first", "TOOL_EXIT": "75"}},
        {"name": "second", "priority": 2, "env": {"SOURCE": "second", "TOOL_EXIT": "0"}},
    ])

    assert runas(ToolID.FASTERQ_DUMP, ["SRR000001"], _context(tmp_path), config) == 0
    assert [e["source"] for e in tool_log()] == ["first", "second"]


def test_exhausted_mirrors(make_tool, tool_log, tmp_path):
    make_tool("fasterq-dump-orig")
    config = DispatchConfig(mirrors=[
        {"name": "first", "env": {"TOOL_EXIT": "75"}},
        {"name": "second", "env": {"TOOL_EXIT": "75"}},
    ])

    with pytest.raises(SourcesExhaustedError) as excinfo:
        runas(ToolID.FASTERQ_DUMP, ["SRR000001", "SRR000002"], _context(tmp_path), config)

    assert excinfo.value.services == ["first", "second"]
    assert [e["argv"][-1] for e in tool_log()] == ["SRR000001", "SRR000001"]


def test_tool_error_passes_through(make_tool, tool_log, tmp_path, monkeypatch):
    make_tool("sra-pileup-orig")
    monkeypatch.setenv("TOOL_EXIT", "3")

    with pytest.raises(ToolFailedError) as excinfo:
        runas(ToolID.SRA_PILEUP, ["SRR000001", "SRR000002"], _context(tmp_path, "sra-pileup"), DispatchConfig())

    assert excinfo.value.exit_code == 3
    assert len(tool_log()) == 1


def test_no_accessions_invokes_tool_bare(make_tool, tool_log, tmp_path, monkeypatch):
    make_tool("fasterq-dump-orig")
    monkeypatch.setenv("TOOL_EMPTY_EXIT", "9")

    code = runas(ToolID.FASTERQ_DUMP, ["--split-3"], _context(tmp_path), DispatchConfig())

    assert code == 9
    assert tool_log() == [{"argv": [], "source": None}]


def test_help_path(make_tool, tool_log, tmp_path):
    make_tool("fastq-dump-orig")
    assert runas(ToolID.FASTQ_DUMP, [], _context(tmp_path, "fastq-dump"), DispatchConfig()) == 0
    assert tool_log()[0]["argv"] == ["--help"]


def test_prefetch_gets_all_runs_at_once(make_tool, tool_log, tmp_path, monkeypatch):
    make_tool("prefetch-orig")
    monkeypatch.setenv("TOOL_EXIT", "4")

    code = runas(ToolID.PREFETCH, ["-t", "https", "SRR000001", "SRR000002"],
                 _context(tmp_path, "prefetch"), DispatchConfig())

    assert code == 4
    assert [e["argv"] for e in tool_log()] == [["--transport", "https", "SRR000001", "SRR000002"]]


def test_self_does_nothing(tmp_path):
    assert runas(ToolID.SELF, ["SRR1"], _context(tmp_path, "sratools"), DispatchConfig()) == 0


# ---------- main ----------
def test_main_exit_codes(make_tool, tool_log, tmp_path, monkeypatch, capsys):
    make_tool("fasterq-dump-orig")
    argv0 = str(tmp_path / "fasterq-dump")

    with pytest.raises(SystemExit) as excinfo:
        main([argv0, "SRR000001"])
    assert excinfo.value.code == 0

    with pytest.raises(SystemExit) as excinfo:
        main([argv0, "SRP000001", "SRX000002"])
    assert excinfo.value.code == 69
    err = capsys.readouterr().err
    assert "SRP000001 is a container accession" in err
    assert "SRX000002 is a container accession" in err

    monkeypatch.setenv("TOOL_EXIT", "3")
    with pytest.raises(SystemExit) as excinfo:
        main([argv0, "SRR000001"])
    assert excinfo.value.code == 3
    assert "quit with error code 3" in capsys.readouterr().err


def test_main_impersonation_and_config(make_tool, tool_log, tmp_path, monkeypatch):
    make_tool("sam-dump-orig")
    config = tmp_path / "sratools.yaml"
    config.write_text(yaml.safe_dump({"mirrors": [{"name": "only", "env": {"TOOL_EXIT": "75"}}]}))
    monkeypatch.setenv("SRATOOLS_CONFIG", str(config))
    monkeypatch.setenv("SRATOOLS_IMPERSONATE", str(tmp_path / "sam-dump"))

    with pytest.raises(SystemExit) as excinfo:
        main(["sratools", "SRR000001"])

    assert excinfo.value.code == 75
    assert tool_log()[0]["argv"] == ["SRR000001"]


def test_main_dry_run(make_tool, tool_log, tmp_path, monkeypatch, capsys):
    make_tool("fasterq-dump-orig")
    monkeypatch.setenv("SRATOOLS_DRY_RUN", "1")

    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "fasterq-dump"), "--location", "ncbi", "SRR000001"])

    assert excinfo.value.code == 0
    assert tool_log() == []
    assert "would exec" in capsys.readouterr().err


def test_main_bad_config(tmp_path, monkeypatch, capsys):
    monkeypatch.setenv("SRATOOLS_CONFIG", str(tmp_path / "missing.yaml"))
    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "fasterq-dump"), "SRR000001"])
    assert excinfo.value.code == 78
    assert "bad configuration" in capsys.readouterr().err


@pytest.mark.parametrize("name, content", [
    ("sratools.yaml", "mirror: []\n"),
    ("sratools.yaml", "- name: ncbi\n"),
    ("sratools.yaml", "mirrors: [unclosed\n"),
    ("sratools.json", "[1, 2]"),
])
def test_main_unusable_config(tmp_path, monkeypatch, capsys, name, content):
    config = tmp_path / name
    config.write_text(content)
    monkeypatch.setenv("SRATOOLS_CONFIG", str(config))

    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "fasterq-dump"), "SRR000001"])

    assert excinfo.value.code == 78
    assert "bad configuration" in capsys.readouterr().err


def test_main_missing_option_file(make_tool, tool_log, tmp_path, capsys):
    make_tool("fasterq-dump-orig")
    missing = tmp_path / "nope.txt"

    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "fasterq-dump"), "--option-file", str(missing)])

    assert excinfo.value.code == 66
    assert f"Accession list not found: {missing}" in capsys.readouterr().err
    assert tool_log() == []


def test_main_unrunnable_tool(tmp_path, capsys):
    tool = tmp_path / "fasterq-dump-orig"
    tool.write_bytes(b"\x00\x01not a program\n")
    tool.chmod(0o755)

    with pytest.raises(SystemExit) as excinfo:
        main([str(tmp_path / "fasterq-dump"), "SRR000001"])

    assert excinfo.value.code == 69
    assert f"failed to exec {tool}" in capsys.readouterr().err
