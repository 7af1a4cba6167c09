"""
Tests for EntanglementTracker.

Covers:
- load / anonymous viewers
- request, accept, idempotent no-ops, self-targeting
- both decline policies
- store failures: logged, index invalidated, no retries
"""
from django.test import TestCase, override_settings

from accounts.models import User
from entanglements.models import Connection
from entanglements.services import (
    AuthenticationRequired,
    DeclinePolicy,
    EntanglementTracker,
    entangled_user_ids,
    pending_request_count,
    pending_requests,
    recent_entanglements,
)
from entanglements.status import ConnectionStatus
from entanglements.store import ConnectionStore, ConnectionStoreError


class FailingStore(ConnectionStore):
    """ConnectionStore that fails the named operations and counts calls."""

    def __init__(self, *failing):
        self.failing = set(failing)
        self.calls = []

    def _maybe_fail(self, name):
        self.calls.append(name)
        if name in self.failing:
            raise ConnectionStoreError(f"{name} unavailable")

    def for_user(self, user_id):
        self._maybe_fail('for_user')
        return super().for_user(user_id)

    def between(self, user_a_id, user_b_id):
        self._maybe_fail('between')
        return super().between(user_a_id, user_b_id)

    def create(self, requester_id, target_id):
        self._maybe_fail('create')
        return super().create(requester_id, target_id)

    def set_status(self, connection_id, status, expected=None):
        self._maybe_fail('set_status')
        return super().set_status(connection_id, status, expected=expected)

    def delete(self, connection_id):
        self._maybe_fail('delete')
        return super().delete(connection_id)


class TrackerTestCase(TestCase):

    def setUp(self):
        self.alice = User.objects.create_user(username="alice", email="alice@example.com", password="x")
        self.bob = User.objects.create_user(username="bob", email="bob@example.com", password="x")
        self.carol = User.objects.create_user(username="carol", email="carol@example.com", password="x")

    def tracker(self, user, **kwargs):
        tracker = EntanglementTracker(user.pk, **kwargs)
        tracker.load()
        return tracker


class LoadTests(TrackerTestCase):

    def test_load_indexes_connections_by_other_user(self):
        outgoing = Connection.objects.create(requester=self.alice, target=self.bob)
        incoming = Connection.objects.create(requester=self.carol, target=self.alice)
        Connection.objects.create(requester=self.bob, target=self.carol)

        tracker = self.tracker(self.alice)

        self.assertEqual(
            tracker.connections_by_other_id,
            {str(self.bob.pk): outgoing, str(self.carol.pk): incoming},
        )

    def test_newest_row_for_a_pair_wins(self):
        Connection.objects.create(
            requester=self.bob, target=self.alice, status=Connection.Status.DECLINED
        )
        Connection.objects.create(requester=self.alice, target=self.bob)

        tracker = self.tracker(self.alice)

        self.assertEqual(tracker.get_status(self.bob.pk), ConnectionStatus.PENDING_OUTGOING)

    def test_anonymous_viewer(self):
        Connection.objects.create(requester=self.alice, target=self.bob)
        tracker = EntanglementTracker(None)
        self.assertEqual(tracker.load(), {})
        self.assertEqual(tracker.get_status(self.bob.pk), ConnectionStatus.NONE)
        with self.assertRaises(AuthenticationRequired):
            tracker.entangle(self.bob.pk)
        with self.assertRaises(AuthenticationRequired):
            tracker.decline(self.bob.pk)

    def test_for_user_with_anonymous_user(self):
        from django.contrib.auth.models import AnonymousUser
        tracker = EntanglementTracker.for_user(AnonymousUser())
        self.assertIsNone(tracker.viewer_id)
        self.assertEqual(tracker.connections_by_other_id, {})

    def test_load_failure_fails_open_to_none(self):
        Connection.objects.create(requester=self.alice, target=self.bob)
        store = FailingStore('for_user')

        with self.assertLogs('entanglements.services', level='ERROR'):
            tracker = self.tracker(self.alice, store=store)

        self.assertEqual(tracker.connections_by_other_id, {})
        self.assertEqual(tracker.get_status(self.bob.pk), ConnectionStatus.NONE)

    def test_unknown_decline_policy(self):
        with self.assertRaises(ValueError):
            EntanglementTracker(self.alice.pk, decline_policy="shred")

    @override_settings(ENTANGLEMENT_DECLINE_POLICY="forget")
    def test_policy_from_settings(self):
        self.assertEqual(EntanglementTracker(self.alice.pk).decline_policy, DeclinePolicy.FORGET)


class EntangleTests(TrackerTestCase):

    def test_request_then_accept_scenario(self):
        alice = self.tracker(self.alice)
        self.assertEqual(alice.get_status(self.bob.pk), ConnectionStatus.NONE)

        self.assertEqual(alice.entangle(self.bob.pk), ConnectionStatus.PENDING_OUTGOING)

        bob = self.tracker(self.bob)
        self.assertEqual(bob.get_status(self.alice.pk), ConnectionStatus.PENDING_INCOMING)

        self.assertEqual(bob.entangle(self.alice.pk), ConnectionStatus.ACCEPTED)
        alice.load()
        self.assertEqual(alice.get_status(self.bob.pk), ConnectionStatus.ACCEPTED)
        self.assertEqual(Connection.objects.count(), 1)

        # Repeating the request once accepted is a no-op
        self.assertEqual(alice.entangle(self.bob.pk), ConnectionStatus.ACCEPTED)
        self.assertEqual(Connection.objects.count(), 1)

    def test_request_is_idempotent_while_pending_outgoing(self):
        store = FailingStore()
        alice = self.tracker(self.alice, store=store)
        alice.entangle(self.bob.pk)
        alice.entangle(self.bob.pk)

        self.assertEqual(store.calls.count('create'), 1)
        self.assertEqual(Connection.objects.count(), 1)

    def test_accept_updates_existing_row_only(self):
        row = Connection.objects.create(requester=self.bob, target=self.alice)
        alice = self.tracker(self.alice)

        alice.entangle(self.bob.pk)

        row.refresh_from_db()
        self.assertEqual(row.status, Connection.Status.ACCEPTED)
        self.assertEqual(Connection.objects.count(), 1)
        self.assertEqual(alice.get_connection(self.bob.pk).pk, row.pk)

    def test_self_target_never_creates_a_row(self):
        alice = self.tracker(self.alice)
        self.assertEqual(alice.entangle(self.alice.pk), ConnectionStatus.NONE)
        self.assertEqual(alice.entangle(str(self.alice.pk)), ConnectionStatus.NONE)
        self.assertFalse(Connection.objects.exists())

    def test_self_target_in_other_id_spellings(self):
        alice = self.tracker(self.alice)

        for other_id in (self.alice.pk.hex, str(self.alice.pk).upper()):
            self.assertEqual(alice.entangle(other_id), ConnectionStatus.NONE)

        self.assertFalse(Connection.objects.exists())

    def test_request_after_decline_creates_new_row(self):
        Connection.objects.create(
            requester=self.bob, target=self.alice, status=Connection.Status.DECLINED
        )
        alice = self.tracker(self.alice)
        self.assertEqual(alice.get_status(self.bob.pk), ConnectionStatus.DECLINED)

        self.assertEqual(alice.entangle(self.bob.pk), ConnectionStatus.PENDING_OUTGOING)
        self.assertEqual(Connection.objects.count(), 2)

    def test_in_flight_target_is_skipped(self):
        alice = self.tracker(self.alice)
        nested = []

        class ReentrantStore(ConnectionStore):
            def create(store_self, requester_id, target_id):
                # A second click while the first write is outstanding
                nested.append((alice.is_loading(target_id), alice.entangle(target_id)))
                return super().create(requester_id, target_id)

        alice.store = ReentrantStore()
        alice.entangle(self.bob.pk)

        self.assertEqual(nested, [(True, ConnectionStatus.NONE)])
        self.assertEqual(Connection.objects.count(), 1)
        self.assertFalse(alice.is_loading(self.bob.pk))

    def test_create_failure_leaves_state_unchanged(self):
        store = FailingStore('create')
        alice = self.tracker(self.alice, store=store)

        with self.assertLogs('entanglements.services', level='ERROR'):
            status = alice.entangle(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.NONE)
        self.assertEqual(store.calls.count('create'), 1)
        self.assertFalse(Connection.objects.exists())
        self.assertFalse(alice.is_loading(self.bob.pk))

    def test_duplicate_request_invalidates_stale_index(self):
        # Alice's index was loaded before Bob sent his own request
        alice = self.tracker(self.alice)
        Connection.objects.create(requester=self.bob, target=self.alice)

        with self.assertLogs('entanglements.services', level='ERROR'):
            status = alice.entangle(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.PENDING_INCOMING)
        self.assertEqual(Connection.objects.count(), 1)

    def test_accept_of_withdrawn_request_does_not_create_row(self):
        row = Connection.objects.create(requester=self.bob, target=self.alice)
        alice = self.tracker(self.alice)
        row.delete()

        with self.assertLogs('entanglements.services', level='ERROR'):
            status = alice.entangle(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.NONE)
        self.assertFalse(Connection.objects.exists())

    def test_failed_refresh_drops_the_pair(self):
        Connection.objects.create(requester=self.bob, target=self.alice)
        store = FailingStore('set_status', 'between')
        alice = self.tracker(self.alice, store=store)

        with self.assertLogs('entanglements.services', level='ERROR') as logs:
            status = alice.entangle(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.NONE)
        self.assertEqual(len(logs.records), 2)
        self.assertEqual(
            Connection.objects.get().status, Connection.Status.PENDING
        )


class DeclineRetainTests(TrackerTestCase):

    def setUp(self):
        super().setUp()
        self.row = Connection.objects.create(requester=self.bob, target=self.alice)

    def test_decline_keeps_declined_row_in_index(self):
        alice = self.tracker(self.alice, decline_policy=DeclinePolicy.RETAIN)

        self.assertEqual(alice.decline(self.bob.pk), ConnectionStatus.DECLINED)

        self.row.refresh_from_db()
        self.assertEqual(self.row.status, Connection.Status.DECLINED)
        alice.load()
        self.assertEqual(alice.get_status(self.bob.pk), ConnectionStatus.DECLINED)

        bob = self.tracker(self.bob)
        self.assertEqual(bob.get_status(self.alice.pk), ConnectionStatus.DECLINED)

    def test_decline_requires_pending_incoming(self):
        bob = self.tracker(self.bob, decline_policy=DeclinePolicy.RETAIN)
        # Bob is the requester: nothing to decline
        self.assertEqual(bob.decline(self.alice.pk), ConnectionStatus.PENDING_OUTGOING)
        self.assertEqual(bob.decline(self.carol.pk), ConnectionStatus.NONE)
        self.row.refresh_from_db()
        self.assertEqual(self.row.status, Connection.Status.PENDING)

    def test_decline_failure_does_not_delete(self):
        store = FailingStore('set_status')
        alice = self.tracker(self.alice, store=store, decline_policy=DeclinePolicy.RETAIN)

        with self.assertLogs('entanglements.services', level='ERROR'):
            status = alice.decline(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.PENDING_INCOMING)
        self.assertNotIn('delete', store.calls)
        self.assertTrue(Connection.objects.filter(pk=self.row.pk).exists())


class DeclineForgetTests(TrackerTestCase):

    def setUp(self):
        super().setUp()
        self.row = Connection.objects.create(requester=self.bob, target=self.alice)

    def test_decline_forgets_pair_locally(self):
        alice = self.tracker(self.alice, decline_policy=DeclinePolicy.FORGET)

        self.assertEqual(alice.decline(self.bob.pk), ConnectionStatus.NONE)
        self.assertNotIn(str(self.bob.pk), alice.connections_by_other_id)

        # The stored row is declined; a reload shows it again
        self.row.refresh_from_db()
        self.assertEqual(self.row.status, Connection.Status.DECLINED)
        alice.load()
        self.assertEqual(alice.get_status(self.bob.pk), ConnectionStatus.DECLINED)

    def test_update_failure_falls_back_to_delete(self):
        store = FailingStore('set_status')
        alice = self.tracker(self.alice, store=store, decline_policy=DeclinePolicy.FORGET)

        with self.assertLogs('entanglements.services', level='ERROR'):
            status = alice.decline(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.NONE)
        self.assertFalse(Connection.objects.exists())

    def test_both_writes_fail(self):
        store = FailingStore('set_status', 'delete')
        alice = self.tracker(self.alice, store=store, decline_policy=DeclinePolicy.FORGET)

        with self.assertLogs('entanglements.services', level='ERROR') as logs:
            status = alice.decline(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.PENDING_INCOMING)
        self.assertEqual(len(logs.records), 2)
        self.assertTrue(Connection.objects.filter(pk=self.row.pk).exists())

    def test_decline_after_accept_elsewhere_keeps_connection(self):
        stale = self.tracker(self.alice, decline_policy=DeclinePolicy.FORGET)
        self.tracker(self.alice).entangle(self.bob.pk)

        with self.assertLogs('entanglements.services', level='ERROR') as logs:
            status = stale.decline(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.ACCEPTED)
        self.assertEqual(len(logs.records), 1)
        self.row.refresh_from_db()
        self.assertEqual(self.row.status, Connection.Status.ACCEPTED)

    def test_request_again_after_forgetting(self):
        alice = self.tracker(self.alice, decline_policy=DeclinePolicy.FORGET)
        alice.decline(self.bob.pk)

        self.assertEqual(alice.entangle(self.bob.pk), ConnectionStatus.PENDING_OUTGOING)
        self.assertEqual(
            Connection.objects.filter(status=Connection.Status.PENDING, requester=self.alice).count(), 1
        )


class RemoveTests(TrackerTestCase):

    def test_either_participant_can_remove(self):
        Connection.objects.create(
            requester=self.alice, target=self.bob, status=Connection.Status.ACCEPTED
        )
        bob = self.tracker(self.bob)

        self.assertEqual(bob.remove(self.alice.pk), ConnectionStatus.NONE)
        self.assertFalse(Connection.objects.exists())

    def test_remove_surfaces_older_row(self):
        Connection.objects.create(
            requester=self.bob, target=self.alice, status=Connection.Status.DECLINED
        )
        Connection.objects.create(requester=self.alice, target=self.bob)
        alice = self.tracker(self.alice)

        self.assertEqual(alice.remove(self.bob.pk), ConnectionStatus.DECLINED)

    def test_remove_failure_is_logged(self):
        Connection.objects.create(requester=self.alice, target=self.bob)
        store = FailingStore('delete')
        alice = self.tracker(self.alice, store=store)

        with self.assertLogs('entanglements.services', level='ERROR'):
            status = alice.remove(self.bob.pk)

        self.assertEqual(status, ConnectionStatus.PENDING_OUTGOING)

    def test_remove_without_connection_is_noop(self):
        alice = self.tracker(self.alice)
        self.assertEqual(alice.remove(self.bob.pk), ConnectionStatus.NONE)


class ReadHelperTests(TrackerTestCase):

    def test_entangled_user_ids(self):
        Connection.objects.create(requester=self.alice, target=self.bob, status=Connection.Status.ACCEPTED)
        Connection.objects.create(requester=self.carol, target=self.alice, status=Connection.Status.ACCEPTED)
        Connection.objects.create(requester=self.bob, target=self.carol)

        self.assertEqual(set(entangled_user_ids(self.alice.pk)), {self.bob.pk, self.carol.pk})
        self.assertEqual(entangled_user_ids(self.bob.pk), [self.alice.pk])

    def test_pending_requests_newest_first(self):
        first = Connection.objects.create(requester=self.bob, target=self.alice)
        second = Connection.objects.create(requester=self.carol, target=self.alice)
        Connection.objects.create(requester=self.alice, target=User.objects.create_user(
            username="dave", email="dave@example.com", password="x"
        ))

        self.assertEqual(list(pending_requests(self.alice.pk)), [second, first])
        self.assertEqual(pending_request_count(self.alice.pk), 2)
        self.assertEqual(pending_request_count(self.bob.pk), 0)

    def test_recent_entanglements_newest_first(self):
        accepted = Connection.objects.create(
            requester=self.alice, target=self.bob, status=Connection.Status.ACCEPTED
        )
        declined = Connection.objects.create(
            requester=self.carol, target=self.alice, status=Connection.Status.DECLINED
        )
        Connection.objects.create(requester=self.alice, target=self.carol)
        Connection.objects.create(requester=self.bob, target=self.carol, status=Connection.Status.ACCEPTED)

        self.assertEqual(list(recent_entanglements(self.alice.pk)), [declined, accepted])
        self.assertEqual(list(recent_entanglements(self.alice.pk, limit=1)), [declined])
