from tcp_flow_monitor.models.datagram import ACK, FIN, PSH, SYN, TCPFlags


def test_is_syn_only_for_bare_syn(make_datagram):
    assert make_datagram(flags=SYN).is_syn()
    assert not make_datagram(flags=SYN | ACK).is_syn()
    assert not make_datagram(flags=ACK).is_syn()
    assert not make_datagram(flags=PSH | ACK).is_syn()


def test_flag_decomposition():
    flags = TCPFlags.from_int(FIN | ACK)
    assert flags.fin and flags.ack
    assert not flags.syn
    assert flags.to_string() == "ACK,FIN"
    assert TCPFlags.from_int(0).to_string() == "NONE"


def test_flow_string_and_header_length(make_datagram):
    dg = make_datagram(src="10.0.0.5:51000", dst="93.184.216.34:80")
    assert dg.flow_string == "10.0.0.5:51000->93.184.216.34:80"
    assert dg.header_length == 20
