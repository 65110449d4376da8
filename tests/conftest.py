import pytest

import config
from models import Event, Member, Team
from pass_generator import PassRenderer

TEMPLATE_COLOR = (30, 60, 90)


class FakeResp:
    def __init__(self, status_code=200, payload=None, text=""):
        self.status_code = status_code
        self._payload = payload
        self.headers = {"Content-Type": "application/json"}
        self.text = text

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


class FakeSession:
    """Records request() calls and replays scripted responses (last one repeats)."""

    def __init__(self, *responses):
        self.responses = list(responses) or [FakeResp()]
        self.calls = []

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        resp = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(resp, Exception):
            raise resp
        return resp


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch):
    import utils

    monkeypatch.setattr(utils.time, "sleep", lambda *_a, **_k: None)


@pytest.fixture
def template_path(tmp_path):
    from PIL import Image

    path = tmp_path / "template.png"
    Image.new("RGB", (config.CANVAS_WIDTH, config.CANVAS_HEIGHT), TEMPLATE_COLOR).save(path)
    return path


@pytest.fixture
def renderer(template_path):
    return PassRenderer(template_path, config.DEFAULT_BOLD_FONT, config.DEFAULT_REGULAR_FONT)


def make_team(members=3, **overrides):
    people = [
        ("Kate Marlowe", "kate@example.com", "9876543211", "captain"),
        ("John Doe", "john@example.com", "9876543210", "member"),
        ("Alex Johnson", "alex@example.com", "9876543212", "member"),
    ]
    fields = dict(
        id="5f2b7c1e-93aa-4d8e-b1c2-0a9d8e7f6a51",
        team_name="RoboWarriors",
        team_code="GT-2026-4496",
        college_name="SRM College of Engineering",
        captain_name="Kate Marlowe",
        captain_email="kate@example.com",
        transaction_id="TXN123456",
        has_paid=True,
        event=Event(name="Robo Race", venue="Main Arena"),
    )
    fields.update(overrides)
    team = Team(**fields)
    team.members = [
        Member(id=f"m{i + 1}", team_id=team.id, name=n, email=e, contact=c, role=r)
        for i, (n, e, c, r) in enumerate(people[:members])
    ]
    return team
