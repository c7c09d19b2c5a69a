from bucketfs.cache import ListingCache
from bucketfs.stat import FileStat


def _listing(*names):
    return [FileStat.file(name, 1) for name in names]


class TestListingCache:
    def test_returns_none_when_missing(self, fake_clock):
        cache = ListingCache(ttl=60, clock=fake_clock)
        assert cache.get("media") is None

    def test_returns_listing_within_ttl(self, fake_clock):
        cache = ListingCache(ttl=60, clock=fake_clock)
        cache.set("media", _listing("a.txt"))

        fake_clock.advance(59)

        assert [entry.name for entry in cache.get("media")] == ["a.txt"]

    def test_expires_after_ttl(self, fake_clock):
        cache = ListingCache(ttl=60, clock=fake_clock)
        cache.set("media", _listing("a.txt"))

        fake_clock.advance(60)

        assert cache.get("media") is None
        assert len(cache) == 0

    def test_last_write_wins(self, fake_clock):
        cache = ListingCache(ttl=60, clock=fake_clock)
        cache.set("media", _listing("a.txt"))
        cache.set("media", _listing("b.txt"))

        assert [entry.name for entry in cache.get("media")] == ["b.txt"]

    def test_stores_a_snapshot(self, fake_clock):
        cache = ListingCache(ttl=60, clock=fake_clock)
        listing = _listing("a.txt")
        cache.set("media", listing)
        listing.append(FileStat.file("late.txt", 1))

        assert [entry.name for entry in cache.get("media")] == ["a.txt"]

    def test_set_purges_expired_entries(self, fake_clock):
        cache = ListingCache(ttl=60, clock=fake_clock)
        cache.set("old", _listing("a.txt"))
        fake_clock.advance(120)
        cache.set("new", _listing("b.txt"))

        assert len(cache) == 1
