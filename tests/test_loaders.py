import pytest

import data_loaders as loaders
from conftest import FakeResp, FakeSession, make_team
from errors import StoreError, TeamNotFoundError

TEAM_ROW = {
    "id": "5f2b7c1e-93aa-4d8e-b1c2-0a9d8e7f6a51",
    "team_name": "RoboWarriors",
    "team_code": None,
    "college_name": "SRM College of Engineering",
    "captain_name": "Kate Marlowe",
    "captain_email": "kate@example.com",
    "has_paid": True,
    "passes_generated": False,
    "transaction_id": "TXN1",
    "events": {"name": "Robo Race", "slug": "robo-race", "venue": "Arena", "start_time": None},
    "team_members": [
        {"id": "m1", "member_name": "Kate Marlowe", "member_email": "kate@example.com",
         "member_contact": "98765", "role": "captain"},
        {"id": "m2", "member_name": "John Doe", "member_email": "john@example.com",
         "member_contact": None, "role": "member"},
    ],
}


def test_team_from_row_parses_nested_records():
    team = loaders.team_from_row(TEAM_ROW)
    assert team.display_id == "5F2B7C1E"
    assert team.event_name == "Robo Race"
    assert team.has_paid and not team.passes_generated
    assert [m.name for m in team.members] == ["Kate Marlowe", "John Doe"]
    assert team.captain.email == "kate@example.com"
    assert team.members[1].contact == ""


def test_team_without_event_gets_default_name():
    team = loaders.team_from_row({**TEAM_ROW, "events": None})
    assert team.event_name == "Event"


def test_supabase_get_team_with_members():
    session = FakeSession(FakeResp(200, [TEAM_ROW]))
    store = loaders.SupabaseTeamStore("https://proj.supabase.co/", "service-key", session=session)
    team = store.get_team_with_members(TEAM_ROW["id"])
    assert team.team_name == "RoboWarriors"
    method, url, kwargs = session.calls[0]
    assert (method, url) == ("GET", "https://proj.supabase.co/rest/v1/teams")
    assert ("id", f"eq.{TEAM_ROW['id']}") in kwargs["params"]
    assert kwargs["headers"]["apikey"] == "service-key"


def test_supabase_missing_team_raises():
    store = loaders.SupabaseTeamStore("https://proj.supabase.co", "k", session=FakeSession(FakeResp(200, [])))
    with pytest.raises(TeamNotFoundError):
        store.get_team_with_members("missing")


def test_supabase_error_status_raises_store_error():
    store = loaders.SupabaseTeamStore("https://proj.supabase.co", "k", session=FakeSession(FakeResp(400, {}, "bad")))
    with pytest.raises(StoreError):
        store.get_team_with_members("x")


def test_supabase_updates_use_patch():
    session = FakeSession(FakeResp(204))
    store = loaders.SupabaseTeamStore("https://proj.supabase.co", "k", session=session)
    store.update_member_pass_url("m1", "https://cdn.test/p.jpg")
    store.mark_team_passes_generated("t1")
    (m1, u1, k1), (m2, u2, k2) = session.calls
    assert (m1, u1.rsplit("/", 1)[1], k1["json"]) == ("PATCH", "team_members", {"pass_url": "https://cdn.test/p.jpg"})
    assert k1["params"] == {"id": "eq.m1"}
    assert (m2, u2.rsplit("/", 1)[1], k2["json"]) == ("PATCH", "teams", {"passes_generated": True})


def test_supabase_pending_filters():
    session = FakeSession(FakeResp(200, [TEAM_ROW]))
    store = loaders.SupabaseTeamStore("https://proj.supabase.co", "k", session=session)
    assert len(store.list_pending_teams(5)) == 1
    params = session.calls[0][2]["params"]
    assert ("has_paid", "eq.true") in params
    assert ("passes_generated", "eq.false") in params
    assert ("limit", "5") in params


def test_supabase_scan_lookup_by_id_prefix():
    session = FakeSession(FakeResp(200, [TEAM_ROW]))
    store = loaders.SupabaseTeamStore("https://proj.supabase.co", "k", session=session)
    team, member = store.find_member_for_scan("5F2B7C1E", "JOHN@example.com")
    assert member.id == "m2"
    params = session.calls[0][2]["params"]
    assert ("id", "gte.5f2b7c1e-0000-0000-0000-000000000000") in params


def test_supabase_scan_lookup_by_team_code():
    session = FakeSession(FakeResp(200, []))
    store = loaders.SupabaseTeamStore("https://proj.supabase.co", "k", session=session)
    assert store.find_member_for_scan("GT-2026-4496", "kate@example.com") is None
    assert ("team_code", "eq.GT-2026-4496") in session.calls[0][2]["params"]


def test_supabase_requires_credentials():
    with pytest.raises(ValueError):
        loaders.SupabaseTeamStore("", "")


def test_in_memory_store_reads_are_copies():
    store = loaders.InMemoryTeamStore([make_team()])
    team = store.get_team_with_members(make_team().id)
    team.members[0].pass_url = "changed"
    assert store.teams[team.id].members[0].pass_url is None


def test_in_memory_store_updates():
    t = make_team()
    store = loaders.InMemoryTeamStore([t])
    store.update_member_pass_url("m2", "https://cdn.test/john.jpg")
    store.mark_team_passes_generated(t.id)
    assert store.teams[t.id].members[1].pass_url == "https://cdn.test/john.jpg"
    assert store.teams[t.id].passes_generated
    assert store.list_pending_teams(10) == []
    with pytest.raises(StoreError):
        store.update_member_pass_url("nobody", "x")


def test_load_team_store_from_csv(tmp_path):
    teams = tmp_path / "teams.csv"
    members = tmp_path / "members.csv"
    teams.write_text(
        "id,team_code,Team Name,College Name,captain_name,captain_email,has_paid,passes_generated,Event Name\n"
        "t1,GT-2026-4496,RoboWarriors,SRM,Kate Marlowe,kate@example.com,true,false,Robo Race\n"
        ",GT-X,Nameless,SRM,A,a@example.com,true,false,Robo Race\n"
    )
    members.write_text(
        "id,team_id,member_name,member_email,member_contact,role\n"
        "m1,t1,Kate Marlowe,kate@example.com,98765,captain\n"
        "m2,t1,John Doe,john@example.com,,member\n"
        "m3,t1,,nobody@example.com,,member\n"
    )
    store = loaders.load_team_store(str(teams), str(members))
    assert list(store.teams) == ["t1"]
    team = store.get_team_with_members("t1")
    assert team.display_id == "GT-2026-4496"
    assert team.event_name == "Robo Race"
    assert team.has_paid
    assert [m.id for m in team.members] == ["m1", "m2"]


def test_store_save_round_trips_through_csv(tmp_path):
    store = loaders.InMemoryTeamStore([make_team()])
    store.update_member_pass_url("m1", "https://cdn.test/kate.jpg")
    teams, members = tmp_path / "teams.csv", tmp_path / "members.csv"
    store.save(str(teams), str(members))

    again = loaders.load_team_store(str(teams), str(members))
    team = again.get_team_with_members(make_team().id)
    assert team.team_code == "GT-2026-4496"
    assert team.members[0].pass_url == "https://cdn.test/kate.jpg"
    assert team.members[1].pass_url is None
