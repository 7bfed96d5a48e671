"""Tests for the identity directory and presence oracles."""

from datetime import timedelta
from decimal import Decimal

import pytest

from knowledgedist.engine import DistributionEngine
from knowledgedist.models import RecipientCandidate
from knowledgedist.services import (
    IdentityDirectory,
    InMemoryDirectory,
    LocationPresenceOracle,
    ParticipantRoster,
    PresenceOracle,
    StorageDirectory,
    StoredLocationOracle,
)

from conftest import DOMAIN_ID, NOW, make_domain, make_rule, make_schedule


class TestInMemoryDirectory:
    @pytest.mark.asyncio
    async def test_lookup_and_listing(self, directory):
        assert isinstance(directory, IdentityDirectory)
        assert (await directory.get_candidate("dan")).alliance_id == "red"
        assert await directory.get_candidate("nobody") is None
        ids = [c.user_id for c in await directory.list_candidates()]
        assert ids == sorted(ids)

    @pytest.mark.asyncio
    async def test_membership_changes(self, directory):
        await directory.set_alliance("ann", "red")
        await directory.deactivate("bob")
        assert (await directory.get_candidate("ann")).alliance_id == "red"
        assert not (await directory.get_candidate("bob")).active
        with pytest.raises(ValueError):
            await directory.set_alliance("nobody", "red")

    @pytest.mark.asyncio
    async def test_rejects_invalid_identity(self):
        with pytest.raises(ValueError):
            await InMemoryDirectory().upsert(RecipientCandidate(user_id="two words"))


class TestStorageDirectory:
    @pytest.mark.asyncio
    async def test_round_trip(self, provider):
        directory = StorageDirectory(provider)
        await directory.upsert(RecipientCandidate(user_id="zed", alliance_id="red"))
        await directory.upsert(RecipientCandidate(user_id="amy"))
        assert (await directory.get_candidate("zed")).alliance_id == "red"
        assert [c.user_id for c in await directory.list_candidates()] == ["amy", "zed"]


class TestLocationPresence:
    @pytest.mark.asyncio
    async def test_location_and_transit(self):
        oracle = LocationPresenceOracle()
        assert isinstance(oracle, PresenceOracle)
        assert not await oracle.is_present("ann", DOMAIN_ID)
        oracle.update("ann", DOMAIN_ID, in_transit=True)
        assert not await oracle.is_present("ann", DOMAIN_ID)
        oracle.update("ann", DOMAIN_ID)
        assert await oracle.is_present("ann", DOMAIN_ID)
        assert not await oracle.is_present("ann", "elsewhere")

    @pytest.mark.asyncio
    async def test_stored_oracle(self, provider):
        oracle = StoredLocationOracle(provider)
        await oracle.update("ann", DOMAIN_ID)
        await oracle.update("bob", DOMAIN_ID, in_transit=True)
        assert await oracle.is_present("ann", DOMAIN_ID)
        assert not await oracle.is_present("bob", DOMAIN_ID)
        assert not await oracle.is_present("cid", DOMAIN_ID)


class TestParticipantRoster:
    @pytest.mark.asyncio
    async def test_join_and_exit(self):
        roster = ParticipantRoster()
        await roster.join("ann", DOMAIN_ID, now=NOW)
        await roster.join("bob", DOMAIN_ID, now=NOW)
        assert await roster.active_participants(DOMAIN_ID) == ["ann", "bob"]
        assert await roster.exit("ann", DOMAIN_ID)
        assert not await roster.exit("ann", DOMAIN_ID)
        assert not await roster.is_present("ann", DOMAIN_ID)
        assert await roster.is_present("bob", DOMAIN_ID)

    @pytest.mark.asyncio
    async def test_rejoin_is_idempotent(self):
        roster = ParticipantRoster()
        first = await roster.join("ann", DOMAIN_ID, now=NOW)
        second = await roster.join("ann", DOMAIN_ID, now=NOW + timedelta(seconds=5))
        assert first is second

    @pytest.mark.asyncio
    async def test_join_after_entry_close_refused(self):
        roster = ParticipantRoster()
        with pytest.raises(ValueError):
            await roster.join("ann", DOMAIN_ID, entry_deadline=NOW, now=NOW + timedelta(seconds=1))
        await roster.join("ann", DOMAIN_ID, entry_deadline=NOW, now=NOW)
        assert await roster.is_present("ann", DOMAIN_ID)

    @pytest.mark.asyncio
    async def test_invalid_user(self):
        with pytest.raises(ValueError):
            await ParticipantRoster().join("", DOMAIN_ID)

    @pytest.mark.asyncio
    async def test_release_drops_only_that_domain(self):
        roster = ParticipantRoster()
        await roster.join("ann", DOMAIN_ID, now=NOW)
        await roster.join("bob", DOMAIN_ID, now=NOW)
        await roster.exit("bob", DOMAIN_ID, now=NOW)
        await roster.join("ann", "tower", now=NOW)

        assert roster.release(DOMAIN_ID) == 2
        assert await roster.active_participants(DOMAIN_ID) == []
        assert await roster.is_present("ann", "tower")

    @pytest.mark.asyncio
    async def test_settlement_releases_roster(self, provider, directory, event_bus):
        roster = ParticipantRoster()
        engine = DistributionEngine.build(
            provider, directory=directory, presence=roster, event_bus=event_bus
        )
        for user_id in ("ann", "bob"):
            await roster.join(user_id, DOMAIN_ID, now=NOW)
        rule = make_rule(master_percent=10, no_alliance_percent=20)
        await engine.domains.save(make_domain("100.00", make_schedule(rule)))

        await engine.executor.execute(DOMAIN_ID, NOW)

        assert await engine.balances.balance("ann") == Decimal("10.00")
        assert await roster.active_participants(DOMAIN_ID) == []
        assert roster.release(DOMAIN_ID) == 0
