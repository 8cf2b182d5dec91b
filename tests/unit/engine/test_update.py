"""
pkgsmith — unit tests for the update engine and commit resolver.

File: tests/unit/engine/test_update.py

Purpose
- Validate per-repo memoization: one VCS evaluation per repository per session.
- Validate rebuild propagation to every package sharing a moved repo and to dependents.
- Validate error isolation and UserAbort propagation.
"""

from __future__ import annotations

import pytest

from pkgsmith.domain.errors import ErrorKind, UserAbort
from pkgsmith.domain.models import OutcomeStatus, Recipe
from pkgsmith.engine.session import SessionContext


def full(prefix: str) -> str:
    return prefix + "0" * (40 - len(prefix))


def shared_repo_recipes() -> list[Recipe]:
    return [
        Recipe("pkgA", repo="repoX", pinned_commit="abc1234"),
        Recipe("pkgB", repo="repoX"),
    ]


def test_pinned_and_unpinned_packages_on_one_repo_share_a_single_evaluation(make_world) -> None:
    world = make_world(
        shared_repo_recipes(),
        repos={"repoX": {"head": full("abc1230"), "remote": {full("abc1234")}}},
    )
    session = SessionContext()

    updated = world.update_engine.update(session)

    assert updated == 1
    assert world.vcs.count("fetch", "repoX") == 1
    assert world.vcs.count("checkout", "repoX") == 1
    assert world.vcs.count("merge", "repoX") == 0
    assert session.rebuild_set == {"pkgA", "pkgB"}
    assert session.updated_repos == {"repoX"}
    assert world.vcs.current_commit("repoX") == full("abc1234")

    statuses = dict((name, outcome.status) for name, outcome in session.outcomes)
    assert statuses == {"pkgA": OutcomeStatus.UPDATED, "pkgB": OutcomeStatus.INDIRECT}
    assert world.builder.materialized == ["pkgA", "pkgB"]
    assert session.built == ["pkgA", "pkgB"]
    assert not session.errors


def test_pin_from_a_later_sibling_applies_to_the_shared_repo(make_world) -> None:
    world = make_world(
        list(reversed(shared_repo_recipes())),
        repos={
            "repoX": {
                "head": full("abc1230"),
                "remote": {full("abc1234")},
                "upstream": full("def9999"),
            }
        },
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 1

    assert world.vcs.count("merge", "repoX") == 0
    assert world.vcs.count("fetch", "repoX") == 1
    assert world.vcs.current_commit("repoX") == full("abc1234")
    statuses = dict((name, outcome.status) for name, outcome in session.outcomes)
    assert statuses == {"pkgB": OutcomeStatus.UPDATED, "pkgA": OutcomeStatus.INDIRECT}
    assert session.rebuild_set == {"pkgA", "pkgB"}

    assert world.update_engine.update(SessionContext()) == 0
    assert world.vcs.current_commit("repoX") == full("abc1234")


def test_second_update_is_a_no_op(make_world) -> None:
    world = make_world(
        shared_repo_recipes(),
        repos={"repoX": {"head": full("abc1230"), "remote": {full("abc1234")}}},
    )
    world.update_engine.update(SessionContext())
    calls_after_first = list(world.vcs.calls)
    materialized_after_first = list(world.builder.materialized)

    session = SessionContext()
    assert world.update_engine.update(session) == 0

    assert world.vcs.calls == calls_after_first
    assert world.builder.materialized == materialized_after_first
    assert session.rebuild_set == set()
    assert all(outcome.status is OutcomeStatus.UP_TO_DATE for _, outcome in session.outcomes)


def test_unpinned_repo_fetches_and_merges_upstream(make_world) -> None:
    world = make_world(
        [Recipe("solo", repo="repoZ")],
        repos={"repoZ": {"head": full("1111"), "upstream": full("2222")}},
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 1

    assert world.vcs.count("fetch") == 1
    assert world.vcs.count("merge") == 1
    (_, outcome), = session.outcomes
    assert outcome.old_commit == full("1111")
    assert outcome.new_commit == full("2222")
    assert outcome.commit_count == 3


def test_unpinned_repo_already_current_is_up_to_date(make_world) -> None:
    world = make_world([Recipe("solo", repo="repoZ")], repos={"repoZ": {"head": full("1111")}})
    session = SessionContext()

    assert world.update_engine.update(session) == 0
    assert session.outcomes[0][1].status is OutcomeStatus.UP_TO_DATE
    assert world.builder.materialized == []


def test_missing_checkout_fails_every_sharing_package_without_vcs_calls(make_world) -> None:
    world = make_world(
        [Recipe("pkgC", repo="repoY"), Recipe("pkgD", repo="repoY")],
        repos={"repoY": {"head": full("aaaa"), "present": False}},
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 0

    assert world.vcs.calls == []
    assert session.errors.distinct_packages() == ("pkgC", "pkgD")
    for package, error in session.errors:
        assert error.kind is ErrorKind.REPOSITORY_UNAVAILABLE
        assert error.package == package


def test_fetch_failure_is_memoized_and_reattributed(make_world) -> None:
    world = make_world(
        shared_repo_recipes(),
        repos={"repoX": {"head": full("abc1230"), "remote": {full("abc1234")}}},
    )
    world.vcs.fail("fetch", "repoX")
    session = SessionContext()

    assert world.update_engine.update(session) == 0

    assert world.vcs.count("fetch") == 1
    errors = list(session.errors)
    assert [package for package, _ in errors] == ["pkgA", "pkgB"]
    assert all(error.kind is ErrorKind.FETCH_FAILED for _, error in errors)
    assert errors[1][1].package == "pkgB"
    assert "fetch: fatal" in errors[0][1].output


def test_failure_in_one_repo_does_not_stop_others(make_world) -> None:
    world = make_world(
        [Recipe("broken", repo="repoB"), Recipe("fine", repo="repoF")],
        repos={
            "repoB": {"head": full("b0b0")},
            "repoF": {"head": full("f0f0"), "upstream": full("f1f1")},
        },
    )
    world.vcs.fail("merge", "repoB")
    session = SessionContext()

    assert world.update_engine.update(session) == 1

    assert session.errors.distinct_packages() == ("broken",)
    (_, error), = session.errors
    assert error.kind is ErrorKind.MERGE_FAILED
    assert session.rebuild_set == {"fine"}


def test_checkout_outside_managed_root_is_skipped(make_world) -> None:
    world = make_world(
        [Recipe("mine", repo="/home/me/src/mine", pinned_commit="beef")],
        repos={"/home/me/src/mine": {"head": full("cafe"), "managed": False}},
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 0

    assert world.vcs.calls == []
    assert session.outcomes[0][1].status is OutcomeStatus.SKIPPED
    assert not session.errors


def test_frozen_and_ignored_recipes_are_not_updated(make_world) -> None:
    world = make_world(
        [
            Recipe("frozen", repo="repoA", freeze=True),
            Recipe("ignored", repo="repoB", ignore=True),
        ],
        repos={
            "repoA": {"head": full("aaaa"), "upstream": full("abab")},
            "repoB": {"head": full("bbbb"), "upstream": full("baba")},
        },
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 0
    assert world.vcs.calls == []
    assert session.outcomes == []


def test_pin_absent_after_fetch_triggers_reclone(make_world) -> None:
    world = make_world(
        [Recipe("pkg", repo="repoR", pinned_commit="beef")],
        repos={"repoR": {"head": full("dead"), "upstream": full("beef")}},
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 1

    assert world.vcs.count("fetch") == 1
    assert world.vcs.count("clone") == 1
    assert world.vcs.count("checkout") == 1
    assert world.vcs.current_commit("repoR") == full("beef")


def test_pin_missing_everywhere_reports_reclone_failure(make_world) -> None:
    world = make_world(
        [Recipe("pkg", repo="repoR", pinned_commit="beef")],
        repos={"repoR": {"head": full("dead")}},
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 0

    (_, error), = session.errors
    assert error.kind is ErrorKind.RECLONE_FAILED
    assert world.vcs.count("checkout") == 0


def test_repo_pin_table_applies_when_recipe_has_no_pin(make_world) -> None:
    world = make_world(
        [Recipe("pkg", repo="repoP")],
        repos={"repoP": {"head": full("1234"), "remote": {full("5678")}}},
        pins={"repoP": "5678"},
    )
    session = SessionContext()

    assert world.update_engine.update(session) == 1
    assert world.vcs.count("merge") == 0
    assert world.vcs.current_commit("repoP") == full("5678")


def test_moved_repo_rebuilds_transitive_dependents_and_drops_stale_builds(make_world) -> None:
    world = make_world(
        [
            Recipe("base", repo="repoX", pinned_commit="abc1234"),
            Recipe("middle", repo="repoM", depends=("base",)),
            Recipe("top", repo="repoT", depends=("middle",)),
            Recipe("unrelated", repo="repoU"),
        ],
        repos={
            "repoX": {"head": full("abc1230"), "remote": {full("abc1234")}},
            "repoM": {"head": full("0101")},
            "repoT": {"head": full("7777")},
            "repoU": {"head": full("8888")},
        },
    )
    world.builder.seed("base", "middle", "top", "unrelated")
    session = SessionContext()

    assert world.update_engine.update(session) == 1

    assert session.rebuild_set == {"base", "middle", "top"}
    assert sorted(world.builder.deleted) == ["base", "middle", "top"]
    assert world.builder.materialized == ["base", "middle", "top"]
    assert world.builder.has_build("unrelated")


def test_build_failure_after_update_is_recorded(make_world) -> None:
    world = make_world(
        shared_repo_recipes(),
        repos={"repoX": {"head": full("abc1230"), "remote": {full("abc1234")}}},
    )
    world.builder.broken.add("pkgB")
    session = SessionContext()

    assert world.update_engine.update(session) == 1

    assert session.built == ["pkgA"]
    (package, error), = session.errors
    assert package == "pkgB"
    assert error.kind is ErrorKind.BUILD_FAILED
    assert error.output == "make: *** error"


def test_unexpected_exception_is_wrapped_per_package(make_world, monkeypatch) -> None:
    world = make_world(
        [Recipe("odd", repo="repoO"), Recipe("even", repo="repoE")],
        repos={"repoO": {"head": full("0d0d")}, "repoE": {"head": full("e0e0")}},
    )

    original = world.vcs.current_commit

    def exploding(repo: str) -> str:
        if repo == "repoO":
            raise RuntimeError("disk on fire")
        return original(repo)

    monkeypatch.setattr(world.vcs, "current_commit", exploding)
    session = SessionContext()

    assert world.update_engine.update(session) == 0

    (package, error), = session.errors
    assert package == "odd"
    assert error.kind is ErrorKind.UNEXPECTED
    assert "disk on fire" in error.detail
    assert [name for name, _ in session.outcomes] == ["odd", "even"]


def test_user_abort_escapes_update(make_world, monkeypatch) -> None:
    world = make_world(
        shared_repo_recipes(),
        repos={"repoX": {"head": full("abc1230"), "remote": {full("abc1234")}}},
    )

    def abort(recipe: Recipe) -> str:
        raise UserAbort("stop")

    monkeypatch.setattr(world.vcs, "fetch", abort)

    with pytest.raises(UserAbort):
        world.update_engine.update(SessionContext())


def test_update_logs_repo_updated_event(make_world, captured_events) -> None:
    world = make_world(
        shared_repo_recipes(),
        repos={"repoX": {"head": full("abc1230"), "remote": {full("abc1234")}}},
    )

    world.update_engine.update(SessionContext())

    updated = [event for event in captured_events if event["event"] == "repo_updated"]
    assert len(updated) == 1
    assert updated[0]["repo"] == "repoX"
    assert updated[0]["new_commit"] == full("abc1234")
