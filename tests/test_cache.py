import redis
from formcraft.core.cache import ViewCounter
from conftest import FakeRedis

class DownRedis:
    def incr(self, *a, **kw): raise redis.ConnectionError("down")
    def mget(self, *a, **kw): raise redis.ConnectionError("down")
    def delete(self, *a, **kw): raise redis.ConnectionError("down")
    def close(self): pass

def test_counts_views():
    counter = ViewCounter(FakeRedis())
    counter.bump_view("a"); counter.bump_view("a"); counter.bump_view("b")
    assert counter.get_views(["a", "b", "c"]) == {"a": 2, "b": 1, "c": 0}
    counter.drop("a")
    assert counter.get_views(["a"]) == {"a": 0}
    assert counter.get_views([]) == {}

def test_redis_outage_is_tolerated():
    counter = ViewCounter(DownRedis())
    counter.bump_view("a"); counter.drop("a")
    assert counter.get_views(["a", "b"]) == {"a": 0, "b": 0}

def test_public_page_survives_redis_outage(client, app, make_form):
    form = make_form()
    app.state.view_counter = ViewCounter(DownRedis())
    assert client.get(f"/forms/{form['slug']}").status_code == 200
