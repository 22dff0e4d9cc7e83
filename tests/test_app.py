"""End-to-end tests of the ShelfRank application root."""

import pytest
import pytest_asyncio

from shelfrank import ShelfRank
from shelfrank.config import ShelfRankConfig
from shelfrank.exceptions import AuthError, DuplicatePairError, TransientError
from shelfrank.ranking.models import ItemDraft
from shelfrank.sync.connectivity import Connectivity
from shelfrank.sync.queue import SyncOutcome


@pytest.fixture
def config(db_path):
    return ShelfRankConfig.model_validate({"database": {"path": str(db_path)}})


@pytest_asyncio.fixture
async def app(config, sheet, sleep):
    shelf = ShelfRank(config, client=sheet, connectivity=Connectivity(), sleep=sleep)
    await shelf.init()
    yield shelf
    await shelf.shutdown()


def _add(app, *titles):
    return [app.add_item(ItemDraft(title=title, author="Author")) for title in titles]


class TestRanking:
    @pytest.mark.asyncio
    async def test_three_items_end_to_end(self, app):
        a, b, c = _add(app, "A", "B", "C")
        app.compare(a.item_id, b.item_id, winner=a.item_id)
        app.compare(b.item_id, c.item_id, winner=b.item_id)
        app.compare(a.item_id, c.item_id, winner=a.item_id)

        result = await app.recompute()

        entries = result.snapshot.entries
        assert [entry.item_id for entry in entries] == [a.item_id, b.item_id, c.item_id]
        assert entries[0].rating > entries[1].rating > entries[2].rating
        assert app.ranking().snapshot_id == result.snapshot.snapshot_id

    @pytest.mark.asyncio
    async def test_duplicate_comparison(self, app):
        a, b = _add(app, "A", "B")
        app.compare(a.item_id, b.item_id, winner=a.item_id)
        with pytest.raises(DuplicatePairError):
            app.compare(b.item_id, a.item_id, winner=b.item_id)

    @pytest.mark.asyncio
    async def test_recompute_without_comparisons_has_no_snapshot(self, app):
        _add(app, "A")
        result = await app.recompute()
        assert result.snapshot is None
        assert result.sync == ()

    @pytest.mark.asyncio
    async def test_export(self, app):
        a, b, _ = _add(app, "A", "B", "C")
        app.compare(a.item_id, b.item_id, winner=b.item_id)
        await app.recompute()

        table = app.export()

        assert [row[0] for row in table[1:]] == ["B", "A", "C"]
        assert table[1][6] == 1


class TestSync:
    @pytest.mark.asyncio
    async def test_changed_items_are_appended_then_updated(self, app, sheet):
        a, b = _add(app, "A", "B")
        app.compare(a.item_id, b.item_id, winner=a.item_id)

        first = await app.recompute()

        assert first.sync == (SyncOutcome.SYNCED,)
        assert [row[0] for row in sheet.rows[1:]] == ["A", "B"]
        assert app.items.get_item(a.item_id).external_row == 2
        assert app.items.get_item(b.item_id).external_row == 3

        app.ledger.remove(a.item_id, b.item_id)
        app.compare(a.item_id, b.item_id, winner=b.item_id)
        second = await app.recompute()

        assert second.sync == (SyncOutcome.SYNCED, SyncOutcome.SYNCED)
        assert sheet.rows[1][4] == 1484.0
        assert sheet.rows[2][4] == 1516.0

    @pytest.mark.asyncio
    async def test_offline_changes_sync_on_reconnect(self, app, sheet):
        a, b = _add(app, "A", "B")
        app.compare(a.item_id, b.item_id, winner=a.item_id)
        app.connectivity.set_online(False)

        result = await app.recompute()
        await app.push_unsynced_items()

        assert result.sync == (SyncOutcome.QUEUED,)
        assert app.sync_status().pending == 1
        assert sheet.appends == []

        app.connectivity.set_online(True)
        await app.sync()

        assert app.sync_status().pending == 0
        assert len(sheet.appends) == 1
        assert app.items.get_item(a.item_id).external_row == 2

    @pytest.mark.asyncio
    async def test_queued_append_carries_latest_rating(self, app, sheet):
        a, b, c = _add(app, "A", "B", "C")
        app.connectivity.set_online(False)
        app.compare(a.item_id, b.item_id, winner=a.item_id)
        await app.recompute()
        app.compare(a.item_id, c.item_id, winner=a.item_id)
        await app.recompute()

        app.connectivity.set_online(True)
        await app.sync()

        remote = {row[0]: row[4] for row in sheet.rows[1:]}
        local = {item.title: item.rating for item in app.items.list_items()}
        assert remote == local
        assert remote["A"] > 1516.0

    @pytest.mark.asyncio
    async def test_auth_hold_and_reauth(self, app, sheet):
        a, b = _add(app, "A", "B")
        app.compare(a.item_id, b.item_id, winner=a.item_id)
        sheet.next_errors.append(AuthError("expired", status=401))

        result = await app.recompute()

        assert result.sync == (SyncOutcome.AUTH_REQUIRED,)
        assert app.sync_status().auth_required

        report = await app.reauthenticated()

        assert report.synced == 1
        assert not app.sync_status().auth_required

    @pytest.mark.asyncio
    async def test_resolve_conflicts_prefers_local(self, app, sheet):
        (dune,) = [app.add_item(ItemDraft(title="Dune", author="Frank Herbert"))]
        app.items.update_ratings({dune.item_id: 8.5})
        sheet.rows.append(["Dune", "Frank Herbert", "", "", 7.0])

        outcomes = await app.resolve_conflicts()

        assert len(outcomes) == 1
        assert outcomes[0].resolution == "local_preferred"
        assert sheet.writes[-1] == ("Sheet1!A2:E2", [["Dune", "Frank Herbert", "", "", 8.5]])
        assert app.items.get_item(dune.item_id).external_row == 2

    @pytest.mark.asyncio
    async def test_import_from_remote(self, app, sheet):
        sheet.rows.extend(
            [
                ["Dune", "Frank Herbert", "2020-01-01"],
                ["Dune", "Frank Herbert", "2023-01-01"],
                ["Emma", "Jane Austen", ""],
            ]
        )

        result = await app.import_from_remote()

        assert result.added == 2
        dune = app.items.find_by_key("dune|frank herbert")
        assert dune.read_dates == ("2020-01-01", "2023-01-01")
        assert dune.external_row == 2

    @pytest.mark.asyncio
    async def test_permanent_failures_are_reported(self, config, sheet, sleep):
        failures = []
        app = ShelfRank(
            config,
            client=sheet,
            sleep=sleep,
            on_permanent_failure=lambda op, exc: failures.append(op.operation_id),
        )
        await app.init()
        try:
            a, b = _add(app, "A", "B")
            app.compare(a.item_id, b.item_id, winner=a.item_id)
            sheet.failing["Sheet1"] = TransientError("unavailable")

            await app.recompute()
            for _ in range(3):
                await app.sync()

            status = app.sync_status()
            assert status.pending == 0
            assert len(status.failures) == 1
            assert failures == [status.failures[0].operation_id]
        finally:
            await app.shutdown()

    @pytest.mark.asyncio
    async def test_queue_survives_restart(self, config, sheet, sleep):
        connectivity = Connectivity(online=False)
        first = ShelfRank(config, client=sheet, connectivity=connectivity, sleep=sleep)
        await first.init()
        a, b = _add(first, "A", "B")
        first.compare(a.item_id, b.item_id, winner=a.item_id)
        await first.recompute()
        await first.shutdown()

        second = ShelfRank(config, client=sheet, connectivity=Connectivity(), sleep=sleep)
        await second.init()
        try:
            assert second.sync_status().pending == 1
            report = await second.sync()
            assert report.synced == 1
        finally:
            await second.shutdown()
