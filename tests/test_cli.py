"""CLI tests against a mocked HTTP transport."""

import json

import httpx
import pytest

from sql_flatten import cli


CHANGED = {
    "success": True,
    "executed": True,
    "execution_time_ms": 42,
    "tables": [{"name": "DBO.ORDERS", "alias": "temp1"}],
    "table_comparisons": [{
        "table_name": "DBO.ORDERS",
        "before": {"name": "Before_0", "columns": ["ID", "STATUS"], "rows": [{"ID": 1, "STATUS": "open"}]},
        "after": {"name": "After_1", "columns": ["ID", "STATUS"], "rows": [{"ID": 1, "STATUS": "closed"}]},
    }],
    "error_message": None,
    "error_kind": None,
    "sql_error": None,
}


class Recorder:
    """Mock transport handler that records requests."""

    def __init__(self, status=200, json_body=None, text=None):
        self.status = status
        self.json_body = json_body
        self.text = text
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(self.status, json=self.json_body)


@pytest.fixture
def script_file(tmp_path):
    path = tmp_path / "change.sql"
    path.write_text("UPDATE dbo.Orders SET STATUS = 'closed' WHERE ID = 1")
    return path


def parse(argv, handler):
    args = cli.build_parser().parse_args(argv)
    args.transport = httpx.MockTransport(handler)
    return args


class TestFormatting:
    def test_changed_cells(self):
        before = {"rows": [{"ID": 1, "STATUS": "open", "QTY": 2}]}
        after = {"columns": ["ID", "STATUS", "QTY"], "rows": [{"ID": 1, "STATUS": "closed", "QTY": 2}]}

        assert cli.changed_cells(before, after) == {(0, "STATUS")}

    def test_changed_cells_new_row(self):
        before = {"rows": []}
        after = {"columns": ["ID"], "rows": [{"ID": 9}]}

        assert cli.changed_cells(before, after) == {(0, "ID")}

    def test_changed_cells_without_after(self):
        assert cli.changed_cells({"rows": []}, None) == set()

    def test_format_rows(self):
        lines = cli.format_rows(["ID", "NAME"], [{"ID": 1, "NAME": None}])

        assert len(lines) == 3
        assert "NULL" in lines[2]

    def test_format_rows_truncates_long_values(self):
        lines = cli.format_rows(["TEXT"], [{"TEXT": "x" * 100}])
        assert "x" * 100 not in lines[2]


class TestRunCommand:
    @pytest.mark.asyncio
    async def test_prints_comparisons(self, script_file, capsys):
        handler = Recorder(json_body=CHANGED)

        code = await cli.cmd_run(parse(["run", str(script_file)], handler))

        assert code == 0
        request = handler.requests[0]
        assert request.url.path == "/script"
        assert request.url.params["execute"] == "true"
        assert request.content == script_file.read_bytes()
        out = capsys.readouterr().out
        assert "DBO.ORDERS" in out
        assert "closed" in out

    @pytest.mark.asyncio
    async def test_no_execute_flag(self, script_file):
        handler = Recorder(json_body={**CHANGED, "executed": False, "table_comparisons": []})

        await cli.cmd_run(parse(["run", str(script_file), "--no-execute"], handler))

        assert handler.requests[0].url.params["execute"] == "false"

    @pytest.mark.asyncio
    async def test_json_output(self, script_file, capsys):
        handler = Recorder(json_body=CHANGED)

        code = await cli.cmd_run(parse(["run", str(script_file), "--json"], handler))

        assert code == 0
        assert json.loads(capsys.readouterr().out)["execution_time_ms"] == 42

    @pytest.mark.asyncio
    async def test_sql_failure_exit_code(self, script_file, capsys):
        handler = Recorder(json_body={
            **CHANGED,
            "success": False,
            "table_comparisons": [],
            "error_message": "conflicted with the REFERENCE constraint",
            "error_kind": "sql",
            "sql_error": {"number": 547, "state": 0, "line_number": 3},
        })

        code = await cli.cmd_run(parse(["run", str(script_file)], handler))

        assert code == 2
        out = capsys.readouterr().out
        assert "REFERENCE constraint" in out
        assert "547" in out

    @pytest.mark.asyncio
    async def test_http_error(self, script_file, capsys):
        handler = Recorder(status=400, json_body={"error": "Invalid script", "detail": "Script cannot be empty"})

        code = await cli.cmd_run(parse(["run", str(script_file)], handler))

        assert code == 1
        assert "400" in capsys.readouterr().err


class TestOtherCommands:
    @pytest.mark.asyncio
    async def test_text(self, script_file, capsys):
        handler = Recorder(text="BEGIN TRANSACTION;\nROLLBACK TRANSACTION;")

        code = await cli.cmd_text(parse(["text", str(script_file)], handler))

        assert code == 0
        assert handler.requests[0].url.path == "/script/text"
        assert capsys.readouterr().out.startswith("BEGIN TRANSACTION;")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("action,method,path", [
        ("status", "GET", "/cache/status"),
        ("refresh", "POST", "/cache/refresh"),
        ("clear", "DELETE", "/cache"),
    ])
    async def test_cache(self, action, method, path):
        handler = Recorder(json_body={"status": "ok"})

        code = await cli.cmd_cache(parse(["cache", action], handler))

        assert code == 0
        assert handler.requests[0].method == method
        assert handler.requests[0].url.path == path

    def test_no_command(self, capsys, monkeypatch):
        monkeypatch.setattr(cli, "colorama_init", lambda: None)
        assert cli.main([]) == 1
        assert "usage" in capsys.readouterr().out

    def test_read_script_stdin(self, monkeypatch):
        import io
        monkeypatch.setattr("sys.stdin", io.StringIO("SELECT 1"))
        assert cli.read_script("-") == "SELECT 1"
