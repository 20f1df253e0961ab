import ipaddress

from metalnet_routes import MetalnetCache


def test_peer_set_replacement_reports_removed_peers():
    cache = MetalnetCache()

    assert cache.set_peer_vnis(100, [200, 300, 100]) == set()
    assert cache.get_peer_vnis(100) == {200, 300}

    assert cache.set_peer_vnis(100, [200]) == {300}
    assert cache.set_peer_vnis(100, []) == {200}
    assert cache.get_peer_vnis(100) == set()


def test_reads_return_copies():
    cache = MetalnetCache()
    cache.set_peer_vnis(100, [200])

    cache.get_peer_vnis(100).add(999)

    assert cache.get_peer_vnis(100) == {200}


def test_peered_prefixes():
    cache = MetalnetCache()
    assert cache.get_peered_prefixes(100) == {}

    cache.set_peered_prefixes(100, 300, ["10.0.0.1/24"])
    cache.set_peered_prefixes(100, 400, [])

    filters = cache.get_peered_prefixes(100)
    assert filters[300] == (ipaddress.ip_network("10.0.0.0/24"),)
    assert filters[400] == ()

    cache.remove_peered_prefixes(100, 300)
    assert set(cache.get_peered_prefixes(100)) == {400}
    cache.remove_peered_prefixes(100)
    assert cache.get_peered_prefixes(100) == {}


def test_load_balancer_lookup_normalizes_addresses():
    cache = MetalnetCache()
    cache.add_load_balancer_server(100, ipaddress.ip_address("2001:db8::10"), "lb-1")

    assert cache.get_load_balancer_server(100, "2001:0db8:0:0::10") == "lb-1"
    assert cache.get_load_balancer_server(200, "2001:db8::10") is None

    cache.remove_load_balancer_server(100, "2001:db8::10")
    assert cache.get_load_balancer_server(100, "2001:db8::10") is None


def test_known_vnis():
    cache = MetalnetCache()
    cache.set_peer_vnis(100, [200])
    cache.set_peered_prefixes(300, 400, ["10.0.0.0/8"])
    cache.add_load_balancer_server(500, "10.0.0.1", "lb-1")

    assert cache.known_vnis() == {100, 200, 300, 500}


def test_revoked_peerings_stay_known_until_swept():
    cache = MetalnetCache()
    cache.set_peer_vnis(100, [200])
    cache.set_peer_vnis(100, [])

    assert cache.known_vnis() == {100, 200}

    cache.cleanup_done(100)
    cache.cleanup_done(200)
    assert cache.known_vnis() == set()
