"""
Tests for the listing cache and path revalidation.
"""

import pytest

from storefront.services.cache import ListingCache


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestListingCache:
    def test_get_or_load_caches(self):
        cache = ListingCache(ttl=60)
        calls = []

        def loader():
            calls.append(1)
            return ["row"]

        assert cache.get_or_load("/products", loader) == ["row"]
        assert cache.get_or_load("/products", loader) == ["row"]
        assert len(calls) == 1

    def test_entries_expire(self):
        clock = FakeClock()
        cache = ListingCache(ttl=60, clock=clock)
        cache.set("/products", ["row"])

        clock.now = 59
        assert cache.get("/products") == ["row"]
        clock.now = 60
        assert cache.get("/products") is None
        assert len(cache) == 0

    def test_product_mutation_drops_public_listings(self):
        cache = ListingCache(ttl=60)
        for key in ("/products", "/products?category_id=1", "/products/tee", "/categories"):
            cache.set(key, "cached")
        cache.set("/account", "cached")

        cache.revalidate("/admin/products")

        assert cache.get("/products") is None
        assert cache.get("/products?category_id=1") is None
        assert cache.get("/products/tee") is None
        assert cache.get("/categories") is None
        assert cache.get("/account") == "cached"

    def test_category_mutation_drops_category_listing(self):
        cache = ListingCache(ttl=60)
        cache.set("/categories", "cached")

        cache.revalidate("/admin/products/categories")

        assert cache.get("/categories") is None

    def test_prefix_must_match_whole_segment(self):
        cache = ListingCache(ttl=60)
        cache.set("/categories-archive", "cached")

        cache.revalidate("/admin/products/categories")

        assert cache.get("/categories-archive") == "cached"

    def test_root_drops_everything(self):
        cache = ListingCache(ttl=60)
        cache.set("/products", "cached")
        cache.set("/anything/else", "cached")

        cache.revalidate("/")

        assert len(cache) == 0

    def test_size_is_capped(self):
        cache = ListingCache(ttl=60, max_entries=100)

        for i in range(1000):
            cache.get_or_load(f"/products?category_id=junk-{i}", lambda: [])

        assert len(cache) == 100
        # Oldest entries go first
        assert cache.get("/products?category_id=junk-0") is None
        assert cache.get("/products?category_id=junk-999") == []

    def test_expired_entries_are_swept_before_evicting(self):
        clock = FakeClock()
        cache = ListingCache(ttl=60, max_entries=2, clock=clock)
        cache.set("/products?category_id=old", "stale")
        clock.now = 30
        cache.set("/categories", "fresh")

        clock.now = 70
        cache.set("/products", "new")

        # The expired entry made room, the live one survives
        assert cache.get("/categories") == "fresh"
        assert cache.get("/products") == "new"
        assert len(cache) == 2

    def test_overwriting_a_key_does_not_evict(self):
        cache = ListingCache(ttl=60, max_entries=2)
        cache.set("/products", 1)
        cache.set("/categories", 1)

        cache.set("/products", 2)

        assert cache.get("/categories") == 1
        assert cache.get("/products") == 2

    def test_load_racing_revalidate_is_not_cached(self):
        cache = ListingCache(ttl=60)

        def loader():
            # A mutation lands while the listing is being read
            cache.revalidate("/admin/products")
            return ["pre-mutation row"]

        assert cache.get_or_load("/products", loader) == ["pre-mutation row"]
        assert cache.get("/products") is None

    def test_failed_load_is_not_cached(self):
        cache = ListingCache(ttl=60)

        def loader():
            raise LookupError("not found")

        with pytest.raises(LookupError):
            cache.get_or_load("/products/missing", loader)
        assert len(cache) == 0
