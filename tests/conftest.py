import dataclasses
import io
from contextlib import redirect_stderr, redirect_stdout
from datetime import datetime, timedelta, timezone
from pathlib import Path

import fncli
import pytest
from dateutil import tz

import daylist
from daylist import config, db, users
from daylist.core.errors import DaylistError
from daylist.core.models import UserSettings
from daylist.lib import clock as clock_mod
from daylist.lib.clock import Clock
from daylist.projects import ProjectStore
from daylist.tasks import TaskStore

# 2026-03-10 09:00 in Berlin
START = datetime(2026, 3, 10, 8, 0, tzinfo=timezone.utc)


class FakeInstant:
    """Settable stand-in for the wall clock."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment

    def advance(self, **delta) -> None:
        self.moment += timedelta(**delta)


@pytest.fixture
def instant():
    return FakeInstant(START)


@pytest.fixture
def clock(instant):
    fixed = Clock(zone=tz.gettz("Europe/Berlin"), instant=instant)
    clock_mod.use(fixed)
    yield fixed
    clock_mod.use(None)


@pytest.fixture
def tmp_daylist_dir(tmp_path, monkeypatch, clock):
    monkeypatch.setattr(config, "DAYLIST_DIR", tmp_path)
    monkeypatch.setattr(config, "DB_PATH", tmp_path / "daylist.db")
    monkeypatch.setattr(config, "CONFIG_PATH", tmp_path / "config.yaml")
    monkeypatch.setattr(config, "BACKUP_DIR", tmp_path / "backups")
    monkeypatch.setattr(config, "LOG_DIR", tmp_path / "logs")
    monkeypatch.setattr(config.Config, "_instance", None)
    db.init()
    users.ensure_user(config.DEFAULT_USER)
    return tmp_path


@pytest.fixture
def store(tmp_daylist_dir, clock):
    return TaskStore(clock=clock)


@pytest.fixture
def projects(tmp_daylist_dir, clock):
    return ProjectStore(clock=clock)


@pytest.fixture
def settings():
    return UserSettings()


@dataclasses.dataclass
class CLIResult:
    exit_code: int
    stdout: str
    stderr: str


class FnCLIRunner:
    _discovered = False

    def __init__(self) -> None:
        if not FnCLIRunner._discovered:
            fncli.autodiscover(Path(daylist.__file__).parent, "daylist")
            FnCLIRunner._discovered = True

    def invoke(self, args: list[str]) -> CLIResult:
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            try:
                code = fncli.dispatch(["daylist", *args])
            except SystemExit as e:
                code = e.code if isinstance(e.code, int) else 1
            except fncli.UsageError as e:
                err.write(f"{e}\n")
                code = 2
            except DaylistError as e:
                err.write(f"{e}\n")
                code = 1
        return CLIResult(exit_code=code or 0, stdout=out.getvalue(), stderr=err.getvalue())


@pytest.fixture
def cli_runner(tmp_daylist_dir):
    return FnCLIRunner()
