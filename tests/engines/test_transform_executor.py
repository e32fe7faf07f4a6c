"""End-to-end tests for engines.executor.TransformExecutor."""

import io
import itertools
import logging
import signal
import threading
from unittest.mock import MagicMock, patch

import pytest

from dstransform import Dataset, ExecOptions, TransformExecutor
from dstransform.core.errors import (
    MarshalError,
    MutationRejectedError,
    NetworkDisabledError,
    PolicyViolationError,
    ScriptLoadError,
    ScriptRuntimeError,
    ScriptTimeoutError,
    TransformCancelledError,
)
from dstransform.core.network import NetworkGuard
from dstransform.core.policy import Rule
from dstransform.engines.script.modules.dataset import reject_fields
from dstransform.models import Entry, SchemaKind
from tests.utils.loader import InMemoryLoader, make_dataset
from tests.utils.stub_http import StubServer


def _executor(server: StubServer | None = None, **opts: object) -> TransformExecutor:
    transport = (server or StubServer()).transport()
    return TransformExecutor(ExecOptions(http_block_private=False, http_transport=transport, **opts))


class TestPhases:
    def test_transform_sets_array_body(self) -> None:
        script = "def transform(dataset, ctx):\n    dataset.set_body([1, 2, 3])\n"
        result = _executor().execute(script, Dataset())

        assert result.phases == ["transform"]
        assert result.dataset.structure is not None
        assert result.entries().kind == SchemaKind.ARRAY
        assert list(result.entries()) == [
            Entry(index=0, value=1),
            Entry(index=1, value=2),
            Entry(index=2, value=3),
        ]

    def test_download_return_becomes_object_body(self) -> None:
        script = "def download(ctx):\n    return {'a': 1}\n"
        result = _executor().execute(script, Dataset())

        assert result.phases == ["download"]
        assert result.results == {"download": {"a": 1}}
        assert result.entries().kind == SchemaKind.OBJECT
        assert list(result.entries()) == [Entry(key="a", value=1)]

    def test_results_threaded_between_phases(self) -> None:
        script = (
            "def download(ctx):\n"
            "    ctx.set('page', 3)\n"
            "    return {'rows': [1, 2]}\n"
            "\n"
            "def transform(dataset, ctx):\n"
            "    rows = ctx.results['download']['rows']\n"
            "    return [r * ctx.get('page') for r in rows]\n"
        )
        result = _executor().execute(script, Dataset())
        assert result.phases == ["download", "transform"]
        assert result.body() == [3, 6]

    def test_scalar_return_is_only_recorded(self) -> None:
        script = "def transform(dataset, ctx):\n    dataset.set_body(['x'])\n    return 7\n"
        result = _executor().execute(script, Dataset())
        assert result.results == {"transform": 7}
        assert result.body() == ["x"]

    def test_no_phase_functions(self) -> None:
        with pytest.raises(ScriptLoadError, match="no transform functions defined") as exc:
            _executor().execute("x = 1", Dataset())
        assert exc.value.phase == "load"

    def test_non_callable_phase(self) -> None:
        with pytest.raises(ScriptLoadError, match="download must be a function"):
            _executor().execute("download = [1]", Dataset())

    def test_transform_info_stamped(self) -> None:
        script = "def transform(dataset, ctx):\n    return [env.get_config('n')]\n"
        result = _executor().execute(script, Dataset(), config={"n": 4})
        info = result.dataset.transform
        assert info is not None
        assert info.syntax == "python"
        assert info.script == script
        assert info.config == {"n": 4}
        assert result.body() == [4]

    def test_print_captured(self) -> None:
        script = "def transform(dataset, ctx):\n    print('rows', 2)\n    return [1]\n"
        result = _executor().execute(script, Dataset())
        assert result.output == "rows 2\n"

    def test_print_to_host_stream(self) -> None:
        out = io.StringIO()
        _executor().execute("print('loading')\ncommit([1])\n", Dataset(), output=out)
        assert out.getvalue() == "loading\n"


class TestCommit:
    def test_top_level_commit(self) -> None:
        result = _executor().execute("commit({'k': 'v'})", Dataset())
        assert result.phases == []
        assert result.body() == {"k": "v"}

    def test_second_commit_fails(self) -> None:
        with pytest.raises(ScriptRuntimeError, match="commit can only be called once") as exc:
            _executor().execute("commit([1])\ncommit([2])\n", Dataset())
        assert exc.value.phase == "load"

    def test_error_builtin(self) -> None:
        script = "def transform(dataset, ctx):\n    error('bad rows')\n"
        with pytest.raises(ScriptRuntimeError, match="transform error: bad rows") as exc:
            _executor().execute(script, Dataset())
        assert exc.value.phase == "transform"


class TestNetwork:
    def test_download_can_fetch(self) -> None:
        server = StubServer(payload={"a": 1})
        script = (
            "def download(ctx):\n"
            "    resp = http.get('https://api.example.com/data')\n"
            "    return resp.json()\n"
        )
        result = _executor(server).execute(script, Dataset())
        assert len(server.requests) == 1
        assert result.body() == {"a": 1}

    def test_transform_cannot_fetch(self) -> None:
        server = StubServer()
        script = (
            "def download(ctx):\n"
            "    return http.get('https://api.example.com/data').json()\n"
            "\n"
            "def transform(dataset, ctx):\n"
            "    return http.get('https://api.example.com/data').json()\n"
        )
        with pytest.raises(NetworkDisabledError) as exc:
            _executor(server).execute(script, Dataset())
        assert exc.value.phase == "transform"
        assert len(server.requests) == 1

    def test_guard_released_after_failed_download(self) -> None:
        server = StubServer()
        script = (
            "def download(ctx):\n"
            "    error('stop')\n"
        )
        with patch("dstransform.engines.executor.NetworkGuard") as guard_cls:
            guard = MagicMock()
            guard_cls.return_value = guard
            with pytest.raises(ScriptRuntimeError):
                _executor(server).execute(script, Dataset())
        guard.enabled.return_value.__exit__.assert_called_once()
        guard.disable.assert_called()

    def test_guard_off_once_download_finishes(self) -> None:
        guards: list[NetworkGuard] = []
        seen: list[tuple[str, bool]] = []

        class RecordingGuard(NetworkGuard):
            def __init__(self) -> None:
                super().__init__()
                guards.append(self)

        class RecordingLoader(InMemoryLoader):
            def load_dataset(self, ref: str) -> Dataset:
                seen.append(("download", guards[0].is_enabled()))
                return super().load_dataset(ref)

        def check(*fields: str) -> None:
            seen.append(("transform", guards[0].is_enabled()))

        loader = RecordingLoader({"me/src": make_dataset([1])})
        script = (
            "def download(ctx):\n"
            "    return repo.load_dataset_body('me/src')\n"
            "\n"
            "def transform(dataset, ctx):\n"
            "    dataset.set_body([2])\n"
        )
        with patch("dstransform.engines.executor.NetworkGuard", RecordingGuard):
            result = _executor().execute(script, Dataset(), loader=loader, check=check)
        assert seen == [("download", True), ("transform", False)]
        assert not guards[0].is_enabled()
        assert result.body() == [2]

    def test_guard_off_after_failed_download(self) -> None:
        guards: list[NetworkGuard] = []

        class RecordingGuard(NetworkGuard):
            def __init__(self) -> None:
                super().__init__()
                guards.append(self)

        script = "def download(ctx):\n    error('stop')\n"
        with patch("dstransform.engines.executor.NetworkGuard", RecordingGuard):
            with pytest.raises(ScriptRuntimeError, match="stop"):
                _executor().execute(script, Dataset())
        assert len(guards) == 1
        assert not guards[0].is_enabled()
        with pytest.raises(NetworkDisabledError):
            guards[0].require()

    def test_network_phases_configurable(self) -> None:
        server = StubServer(payload=[1])
        script = "def transform(dataset, ctx):\n    return http.get('https://api.example.com/').json()\n"
        result = _executor(server, network_phases=frozenset({"transform"})).execute(script, Dataset())
        assert result.body() == [1]

    def test_import_http_namespace(self) -> None:
        server = StubServer(payload=[1, 2])
        script = (
            "def download(ctx):\n"
            "    import http\n"
            "    return http.get('https://api.example.com/').json()\n"
        )
        assert _executor(server).execute(script, Dataset()).body() == [1, 2]


class TestPolicy:
    def test_secret_available_in_download(self) -> None:
        script = "def download(ctx):\n    return [env.get_secret('token')]\n"
        result = _executor().execute(script, Dataset(), secrets={"token": "t0k"})
        assert result.body() == ["t0k"]

    def test_secret_denied_in_transform(self) -> None:
        script = "def transform(dataset, ctx):\n    return [env.get_secret('token')]\n"
        with pytest.raises(PolicyViolationError, match="get_secret cannot be called in transform step") as exc:
            _executor().execute(script, Dataset(), secrets={"token": "t0k"})
        assert exc.value.phase == "transform"
        assert exc.value.method == "env.get_secret"
        assert exc.value.backtrace is not None
        assert "line 2, in transform" in exc.value.backtrace

    def test_custom_rules(self) -> None:
        rules = (Rule("*", "*", True), Rule("transform", "dataset.set_meta", False))
        script = "def transform(dataset, ctx):\n    dataset.set_meta('title', 'x')\n"
        with pytest.raises(PolicyViolationError):
            _executor(rules=rules).execute(script, Dataset())


class TestMutation:
    def test_veto_keeps_type_and_dataset(self) -> None:
        ds = make_dataset([1])
        script = "def transform(dataset, ctx):\n    dataset.set_body([9])\n"
        with pytest.raises(MutationRejectedError, match="cannot mutate dataset field: body"):
            _executor().execute(script, ds, check=reject_fields("body"))
        assert ds.body == b"[1]"

    def test_host_hook_error_is_chained(self) -> None:
        def check(*fields: str) -> None:
            raise ValueError("read-only dataset")

        script = "def transform(dataset, ctx):\n    dataset.set_meta('title', 'x')\n"
        with pytest.raises(ScriptRuntimeError, match="ValueError: read-only dataset") as exc:
            _executor().execute(script, Dataset(), check=check)
        assert isinstance(exc.value.__cause__, ValueError)


class TestErrors:
    def test_runtime_error_has_phase_and_backtrace(self) -> None:
        script = (
            "def helper(rows):\n"
            "    return rows[10]\n"
            "\n"
            "def transform(dataset, ctx):\n"
            "    return helper([1])\n"
        )
        with pytest.raises(ScriptRuntimeError) as exc:
            _executor().execute(script, Dataset())
        e = exc.value
        assert e.phase == "transform"
        assert "IndexError" in e.message
        assert "in helper" in e.backtrace
        assert "return rows[10]" in e.backtrace
        assert str(e).startswith("transform: IndexError")

    def test_syntax_error(self) -> None:
        with pytest.raises(ScriptLoadError) as exc:
            _executor().execute("def transform(dataset, ctx)\n    pass\n", Dataset())
        assert exc.value.phase == "load"

    def test_unsupported_return_value(self) -> None:
        script = "def transform(dataset, ctx):\n    return {1, 2}\n"
        with pytest.raises(MarshalError, match="unsupported value type: set") as exc:
            _executor().execute(script, Dataset())
        assert exc.value.phase == "transform"

    def test_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.ERROR, logger="dstransform.engines.executor"):
            with pytest.raises(ScriptLoadError):
                _executor().execute("x = 1", Dataset())
        assert "transform failed in load" in caplog.text


class TestBudget:
    def test_cancelled_before_phase(self) -> None:
        cancel = threading.Event()
        cancel.set()
        script = "def transform(dataset, ctx):\n    return [1]\n"
        with pytest.raises(TransformCancelledError) as exc:
            _executor().execute(script, Dataset(), cancel=cancel)
        assert exc.value.phase == "transform"

    def test_deadline_checked_between_phases(self) -> None:
        script = "def download(ctx):\n    return [1]\n"
        with patch("dstransform.engines.executor.time") as mock_time:
            mock_time.monotonic.side_effect = itertools.chain([0.0], itertools.repeat(100.0))
            with pytest.raises(ScriptTimeoutError, match="deadline before download"):
                _executor(timeout=5.0).execute(script, Dataset())

    @pytest.mark.skipif(not hasattr(signal, "SIGALRM"), reason="SIGALRM not available (e.g. Windows)")
    def test_call_timeout(self) -> None:
        script = "def transform(dataset, ctx):\n    while True:\n        pass\n"
        with pytest.raises(ScriptTimeoutError, match="timed out") as exc:
            _executor(call_timeout=1).execute(script, Dataset())
        assert exc.value.phase == "transform"


def test_repo_loads_recorded() -> None:
    loader = InMemoryLoader({"me/cities": make_dataset([{"n": "a"}, {"n": "b"}])})
    script = (
        "def download(ctx):\n"
        "    rows = repo.load_dataset_body('me/cities')\n"
        "    return [r['n'] for r in rows]\n"
    )
    result = _executor().execute(script, Dataset(), loader=loader)
    assert result.body() == ["a", "b"]
    assert result.dataset.transform.resources == {"me/cities": {"path": "me/cities"}}


def test_runs_do_not_share_state() -> None:
    executor = _executor()
    script = "def transform(dataset, ctx):\n    ctx.set('seen', True)\n    return [ctx.get('seen', False)]\n"
    first = executor.execute(script, Dataset())
    second = executor.execute(script, Dataset())
    assert first.body() == second.body() == [True]
    assert first.dataset is not second.dataset
