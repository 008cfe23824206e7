from concurrent.futures import ThreadPoolExecutor

from shim.auth.sessions import Fingerprint, SessionStore

FP = Fingerprint("1.2.3.4", "UA1")
OTHER_FP = Fingerprint("5.6.7.8", "UA1")


def test_new_session_is_anonymous(session_store, clock):
    sid, sess = session_store.new_session(FP)
    assert sid
    assert sess.user == ""
    assert not sess.logged_in
    assert sess.created == int(clock.now)
    assert sess.lifespan == 3600
    assert session_store.lookup(sid) == sess


def test_lookup_unknown_and_empty(session_store):
    assert session_store.lookup("does-not-exist") is None
    assert session_store.lookup(None) is None
    assert session_store.lookup("") is None


def test_session_ids_are_unique_and_random(session_store):
    ids = {session_store.new_session(FP)[0] for _ in range(200)}
    assert len(ids) == 200
    assert all(len(i) >= 40 for i in ids)


def test_login_mints_fresh_id_and_drops_previous(session_store, clock):
    anon_id, _ = session_store.new_session(FP)
    clock.advance(100)

    sid, sess = session_store.login(anon_id, "root", FP)
    assert sid != anon_id
    assert session_store.lookup(anon_id) is None
    assert sess.logged_in and sess.user == "root"
    assert sess.created == int(clock.now)
    assert sess.lifespan == 7200
    assert sess.fingerprint == FP


def test_login_without_previous_session(session_store):
    sid, sess = session_store.login(None, "root", FP)
    assert session_store.lookup(sid) == sess
    assert len(session_store) == 1


def test_fingerprint_is_checked(session_store, clock):
    sid, sess = session_store.login(None, "root", FP)
    assert sess.is_valid_for(FP, clock.now)
    assert not sess.is_valid_for(OTHER_FP, clock.now)
    assert not sess.is_valid_for(Fingerprint("1.2.3.4", "UA2"), clock.now)


def test_expired_session_is_found_until_swept(clock):
    store = SessionStore(anonymous_lifespan=1, authenticated_lifespan=1, clock=clock)
    sid, sess = store.login(None, "root", FP)
    clock.advance(2)

    assert store.lookup(sid) is not None
    assert sess.is_expired(clock.now)
    assert not sess.is_valid_for(FP, clock.now)

    assert store.sweep() == 1
    assert store.lookup(sid) is None


def test_sweep_keeps_live_sessions(session_store, clock):
    anon_id, _ = session_store.new_session(FP)
    auth_id, _ = session_store.login(None, "root", FP)
    clock.advance(3601)  # past the anonymous lifespan only

    assert session_store.sweep() == 1
    assert anon_id not in session_store
    assert auth_id in session_store


def test_session_valid_at_exact_expiry_instant(session_store, clock):
    _, sess = session_store.new_session(FP)
    clock.advance(sess.lifespan)
    assert not sess.is_expired(clock.now)
    assert session_store.sweep() == 0


def test_invalidate(session_store):
    sid, _ = session_store.login(None, "root", FP)
    assert session_store.invalidate(sid) is True
    assert session_store.lookup(sid) is None
    assert session_store.invalidate(sid) is False
    assert session_store.invalidate(None) is False


def test_sweep_concurrent_with_writes(clock):
    store = SessionStore(anonymous_lifespan=1, authenticated_lifespan=1, clock=clock)

    def work(i):
        sid, _ = store.new_session(FP)
        store.lookup(sid)
        store.sweep()
        return sid

    with ThreadPoolExecutor(max_workers=8) as pool:
        ids = list(pool.map(work, range(400)))
    assert len(set(ids)) == 400
    clock.advance(5)
    store.sweep()
    assert len(store) == 0
