from meshcni.tables import Connection, IpId, PolicySet, ServiceWithEndpoints, render_table


def test_ip_table_exact_layout():
    table = render_table([IpId("10.0.0.1", 5)])
    assert table == " IP       ID \n 10.0.0.1 5  "


def test_empty_rows_render_nothing():
    assert render_table([]) == ""


def test_all_lines_same_width():
    rows = [IpId("10.0.0.1", 5), IpId("fd00::1234:5678", 123456)]
    lines = render_table(rows).split("\n")
    assert len(lines) == 3
    assert len({len(line) for line in lines}) == 1


def test_connection_cells_join_ip_and_port():
    table = render_table([Connection("1.2.3.4", 80, "5.6.7.8", 443, "TCP")])
    header, row = table.split("\n")
    assert header.split() == ["SOURCE", "DESTINATION", "PROTO"]
    assert row.split() == ["1.2.3.4:80", "5.6.7.8:443", "TCP"]


def test_policy_headers_in_order():
    table = render_table([PolicySet(1, 2, 8080, "TCP", "ALLOW")])
    header, row = table.split("\n")
    positions = [
        header.index(h)
        for h in ("SOURCE ID", "DESTINATION ID", "DESTINATION PORT", "PROTO", "ACTION")
    ]
    assert positions == sorted(positions)
    assert row.split() == ["1", "2", "8080", "TCP", "ALLOW"]


def test_service_endpoints_span_lines():
    row = ServiceWithEndpoints("10.96.0.1:443", "TCP", ["10.0.0.5:6443", "10.0.0.6:6443"])
    lines = render_table([row]).split("\n")
    # header, one line per endpoint, plus the empty line after the trailing newline
    assert len(lines) == 4
    assert "10.96.0.1:443" in lines[1]
    assert "10.0.0.5:6443" in lines[1]
    assert "10.0.0.6:6443" in lines[2]
    assert lines[3].strip() == ""
    assert len({len(line) for line in lines}) == 1


def test_columns_align_under_headers():
    table = render_table([IpId("192.168.100.200", 7), IpId("1.1.1.1", 42)])
    header, first, second = table.split("\n")
    id_col = header.index("ID")
    assert first[id_col:].strip() == "7"
    assert second[id_col:].strip() == "42"