import json

import httpx
import pytest
from typer.testing import CliRunner

from nomadops.cli import cli
from nomadops.cli.common.context import NomadAppContext
from nomadops.core.adapters.nomad import NomadAdapter
from nomadops.core.client import NomadConfig

runner = CliRunner()


def _plan_response(place: int) -> dict:
    return {
        "JobModifyIndex": 9,
        "Diff": {"Type": "None", "ID": "web"},
        "Annotations": {"DesiredTGUpdates": {"app": {"Place": place, "Ignore": 1}}},
    }


@pytest.fixture
def nomad(monkeypatch, settings):
    """Wire the CLI to an in-memory Nomad served through httpx.MockTransport."""
    state = {"place": 0, "requests": []}

    def handler(request: httpx.Request) -> httpx.Response:
        state["requests"].append(request)
        if request.url.path == "/v1/job/web/plan":
            return httpx.Response(200, json=_plan_response(state["place"]))
        if request.url.path == "/v1/system/gc":
            return httpx.Response(200)
        if request.url.path == "/v1/jobs" and request.method == "GET":
            return httpx.Response(200, json=[{"ID": "api"}, {"ID": "web"}])
        if request.url.path == "/v1/job/api/evaluate":
            return httpx.Response(200, json={"EvalID": "ev-1"})
        return httpx.Response(404, text="job not found")

    client = httpx.Client(base_url="http://nomad.test", transport=httpx.MockTransport(handler))
    appctx = NomadAppContext(
        config=NomadConfig(address="http://nomad.test"),
        client=client,
        adapter=NomadAdapter(client),
        settings=settings,
    )
    monkeypatch.setattr(cli, "setup_logging", lambda level: 20)
    monkeypatch.setattr(cli, "build_context", lambda *args, **kwargs: appctx)
    return state


@pytest.fixture
def jobfile(tmp_path):
    path = tmp_path / "web.json"
    path.write_text(
        json.dumps({"Job": {"ID": "web", "Region": "eu", "TaskGroups": [{"Name": "app"}]}}),
        encoding="utf-8",
    )
    return str(path)


def test_plan_exits_zero_without_changes(nomad, jobfile):
    result = runner.invoke(cli.app, ["plan", jobfile, "--no-color"])

    assert result.exit_code == 0
    assert "Job Modify Index: 9" in result.output
    assert nomad["requests"][0].url.params["region"] == "eu"


def test_plan_exits_one_with_changes(nomad, jobfile):
    nomad["place"] = 2

    result = runner.invoke(cli.app, ["plan", jobfile])

    assert result.exit_code == 1
    assert "Scheduler dry-run:" in result.output


def test_plan_exits_255_on_unreadable_job_file(nomad, tmp_path):
    result = runner.invoke(cli.app, ["plan", str(tmp_path / "missing.nomad")])

    assert result.exit_code == 255
    assert "cannot read job file" in result.output


def test_redeploy_of_unknown_job_fails(nomad):
    result = runner.invoke(cli.app, ["redeploy", "web"])

    assert result.exit_code == 1
    assert 'job "web" not found on server' in result.output


def test_node_drain_requires_exactly_one_target(nomad):
    result = runner.invoke(cli.app, ["node", "drain", "--id", "n1", "--self"])

    assert result.exit_code == 2
    assert "exactly one of --id, --name or --self" in result.output


def test_gc_triggers_collection(nomad):
    result = runner.invoke(cli.app, ["gc"])

    assert result.exit_code == 0
    assert nomad["requests"][0].method == "PUT"
    assert "Garbage collection triggered" in result.output


def test_re_eval_all_reports_failed_jobs(nomad):
    result = runner.invoke(cli.app, ["re-eval", "--all"])

    assert result.exit_code == 1
    assert [r.url.path for r in nomad["requests"]] == [
        "/v1/jobs",
        "/v1/job/api/evaluate",
        "/v1/job/web/evaluate",
    ]
    assert "failed to evaluate 1 job(s): web" in result.output


def test_re_eval_single_job(nomad):
    result = runner.invoke(cli.app, ["re-eval", "api"])

    assert result.exit_code == 0
    assert "Evaluations created" in result.output


def test_re_eval_requires_job_or_all(nomad):
    result = runner.invoke(cli.app, ["re-eval", "api", "--all"])

    assert result.exit_code == 2
    assert "exactly one of JOB or --all" in result.output
