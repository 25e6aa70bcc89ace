"""ConnectionRequestService: submit, respond, cancel."""

import threading

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from playconnect.core.activities import to_ref
from playconnect.core.connection_requests import ConnectionRequestService
from playconnect.core.connections import active_connection, remove_connection
from playconnect.core.errors import (
    AlreadyConnected,
    AlreadyResolved,
    DuplicatePendingRequest,
    IdentityResolutionFailure,
    InvalidState,
    NotAuthorised,
    RequestNotFound,
    SelfConnection,
)
from playconnect.core.identity import IdentityStore
from playconnect.core.pending_invitations import PendingInvitationLedger
from playconnect.database import Base
from playconnect.models.activity import Activity
from playconnect.models.activity_invitation import ActivityInvitation
from playconnect.models.connection import Connection
from playconnect.models.parent import Parent
from playconnect.models.pending_activity_invitation import PendingActivityInvitation


@pytest.fixture
def families(make_parent):
    alice = make_parent("Alice", children=("Ava",))
    bob = make_parent("Bob", children=("Ben",))
    return alice, bob


def submit(db, requester, target, **kwargs):
    return ConnectionRequestService(db).submit_request(
        requester, requester.children[0].uuid, target, **kwargs
    )


class TestSubmit:
    def test_single_child_target_is_chosen_automatically(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob, message="Play at the park?")

        assert request.status == "pending"
        assert request.target_child_id == bob.children[0].id
        assert request.message == "Play at the park?"

    def test_multi_child_target_needs_a_child(self, db, make_parent, families):
        alice, _ = families
        carol = make_parent("Carol", children=("Cal", "Cora"))

        with pytest.raises(IdentityResolutionFailure):
            submit(db, alice, carol)

        request = submit(db, alice, carol, target_child_uuid=carol.children[1].uuid)
        assert request.target_child_id == carol.children[1].id

    def test_duplicate_pending_request(self, db, families):
        alice, bob = families
        submit(db, alice, bob)

        with pytest.raises(DuplicatePendingRequest):
            submit(db, alice, bob)

    def test_self_request(self, db, families):
        alice, _ = families
        with pytest.raises(SelfConnection):
            submit(db, alice, alice)

    def test_requester_must_own_child(self, db, families):
        alice, bob = families
        with pytest.raises(NotAuthorised):
            ConnectionRequestService(db).submit_request(alice, bob.children[0].uuid, bob)

    def test_already_connected(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        ConnectionRequestService(db).respond(request.uuid, "accept", bob)

        with pytest.raises(AlreadyConnected):
            submit(db, bob, alice)


class TestRespond:
    def test_accept_creates_one_active_connection(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)

        conn = ConnectionRequestService(db).respond(request.uuid, "accept", bob)

        assert conn.status == "active"
        assert conn.child_a_id < conn.child_b_id
        assert conn.source_request_id == request.id
        db.refresh(request)
        assert request.status == "accepted"
        assert request.responded_at is not None

    def test_accept_twice_is_idempotent(self, db, families, make_activity):
        alice, bob = families
        make_activity(alice)
        request = submit(db, alice, bob)
        service = ConnectionRequestService(db)

        first = service.respond(request.uuid, "accept", bob)
        second = service.respond(request.uuid, "accept", bob)

        assert first.id == second.id
        assert db.query(Connection).count() == 1
        # auto-notify ran exactly once
        assert db.query(ActivityInvitation).count() == 1

    def test_crossed_requests_share_one_connection(self, db, families):
        alice, bob = families
        outgoing = submit(db, alice, bob)
        incoming = submit(db, bob, alice)
        service = ConnectionRequestService(db)

        first = service.respond(outgoing.uuid, "accept", bob)
        second = service.respond(incoming.uuid, "accept", alice)

        assert first.id == second.id
        assert db.query(Connection).count() == 1

    def test_reject_has_no_side_effects_and_repeats_silently(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        service = ConnectionRequestService(db)

        assert service.respond(request.uuid, "reject", bob) is None
        assert service.respond(request.uuid, "reject", bob) is None
        assert db.query(Connection).count() == 0

    def test_accept_after_reject_is_invalid(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        service = ConnectionRequestService(db)
        service.respond(request.uuid, "reject", bob)

        with pytest.raises(InvalidState):
            service.respond(request.uuid, "accept", bob)

    def test_reject_after_accept_conflicts(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        service = ConnectionRequestService(db)
        service.respond(request.uuid, "accept", bob)

        with pytest.raises(AlreadyResolved):
            service.respond(request.uuid, "reject", bob)

    def test_only_target_parent_may_respond(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)

        with pytest.raises(NotAuthorised):
            ConnectionRequestService(db).respond(request.uuid, "accept", alice)

    def test_unknown_request(self, db, families):
        _, bob = families
        with pytest.raises(RequestNotFound):
            ConnectionRequestService(db).respond("no-such-request", "accept", bob)

    def test_unknown_action(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        with pytest.raises(InvalidState):
            ConnectionRequestService(db).respond(request.uuid, "maybe", bob)

    def test_removed_connection_is_reactivated(self, db, families):
        alice, bob = families
        service = ConnectionRequestService(db)
        conn = service.respond(submit(db, alice, bob).uuid, "accept", bob)
        remove_connection(db, conn.uuid, alice)
        assert active_connection(db, conn.child_a_id, conn.child_b_id) is None

        again = service.respond(submit(db, alice, bob).uuid, "accept", bob)

        assert again.id == conn.id
        assert again.status == "active"
        assert again.removed_at is None
        assert db.query(Connection).count() == 1


class TestCancelAndLists:
    def test_sender_cancels(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        service = ConnectionRequestService(db)

        cancelled = service.cancel(request.uuid, alice)

        assert cancelled.status == "rejected"
        assert service.incoming(bob) == []
        assert service.outgoing(alice) == []

    def test_only_sender_cancels(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        with pytest.raises(NotAuthorised):
            ConnectionRequestService(db).cancel(request.uuid, bob)

    def test_incoming_and_outgoing(self, db, families):
        alice, bob = families
        request = submit(db, alice, bob)
        service = ConnectionRequestService(db)

        assert [r.uuid for r in service.incoming(bob)] == [request.uuid]
        assert [r.uuid for r in service.outgoing(alice)] == [request.uuid]
        assert service.incoming(alice) == []


class TestConcurrentAccept:
    """Two sessions on separate threads accept crossed requests for one pair."""

    @pytest.fixture
    def file_sessions(self, tmp_path):
        eng = create_engine(
            f"sqlite:///{tmp_path / 'playconnect.db'}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        Base.metadata.create_all(bind=eng)
        yield sessionmaker(autocommit=False, autoflush=False, bind=eng)
        eng.dispose()

    def test_crossed_accepts_produce_one_connection_and_one_propagation(self, file_sessions):
        setup = file_sessions()
        store = IdentityStore(setup)
        alice = store.create_parent("Alice", email="alice@example.com")
        ava = store.create_child(alice, "Ava")
        bob = store.create_parent("Bob", email="bob@example.com")
        ben = store.create_child(bob, "Ben")
        activity = Activity(
            host_parent_id=alice.id,
            host_child_id=ava.id,
            name="Zoo trip",
            auto_notify_new_connections=False,
        )
        setup.add(activity)
        setup.commit()

        PendingInvitationLedger(setup).add_pending(to_ref(activity), f"pending-child-{ben.uuid}")
        setup.commit()

        service = ConnectionRequestService(setup)
        outgoing = service.submit_request(alice, ava.uuid, bob)
        incoming = service.submit_request(bob, ben.uuid, alice)
        answers = [(outgoing.uuid, bob.uuid), (incoming.uuid, alice.uuid)]
        ben_id = ben.id
        setup.close()

        barrier = threading.Barrier(len(answers))
        errors = []

        def accept(request_uuid, responder_uuid):
            session = file_sessions()
            try:
                responder = session.query(Parent).filter(Parent.uuid == responder_uuid).one()
                barrier.wait()
                ConnectionRequestService(session).respond(request_uuid, "accept", responder)
            except Exception as e:
                errors.append(e)
            finally:
                session.close()

        threads = [threading.Thread(target=accept, args=answer) for answer in answers]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        check = file_sessions()
        try:
            assert errors == []
            assert check.query(Connection).count() == 1
            (invitation,) = check.query(ActivityInvitation).all()
            assert invitation.invited_child_id == ben_id
            assert check.query(PendingActivityInvitation).count() == 0
        finally:
            check.close()
