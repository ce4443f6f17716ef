"""DnsTargetChecker with a stub lookup."""
import dns.resolver

from app.services.dns_checker import DnsTargetChecker, lookup_records

TARGET = "storefronts.onrender.com"
APEX_IP = "216.24.57.1"


def _checker(records):
    def lookup(hostname, rdtype, timeout):
        return list(records.get((hostname, rdtype), []))

    return DnsTargetChecker(cname_target=TARGET, apex_ip=APEX_IP, lookup=lookup)


def test_cname_to_platform_target():
    result = _checker({("www.example.com", "CNAME"): ["Storefronts.onrender.com."]}).check_target("www.example.com")

    assert result.points_to_platform is True
    assert result.matched_record == "CNAME"
    assert result.next_step is None


def test_cname_elsewhere_is_reported():
    result = _checker({("www.example.com", "CNAME"): ["shops.oldhost.net"]}).check_target("www.example.com")

    assert result.points_to_platform is False
    assert result.found == ["shops.oldhost.net"]
    assert "shops.oldhost.net" in result.error
    assert result.next_step == "Add CNAME record: www → storefronts.onrender.com"


def test_apex_a_record_on_anycast_ip():
    records = {("example.com", "A"): ["203.0.113.9", APEX_IP]}
    result = _checker(records).check_target("example.com", expected_record="A")

    assert result.points_to_platform is True
    assert result.matched_record == "A"


def test_apex_a_record_elsewhere():
    result = _checker({("example.com", "A"): ["203.0.113.9"]}).check_target("Example.COM", expected_record="A")

    assert result.hostname == "example.com"
    assert result.points_to_platform is False
    assert result.next_step == "Add A record: @ → 216.24.57.1"


def test_no_records():
    result = _checker({}).check_target("www.example.com")
    assert result.points_to_platform is False
    assert result.error == "No CNAME or A record found"


def test_lookup_failure_never_raises():
    def exploding(hostname, rdtype, timeout):
        raise OSError("network unreachable")

    checker = DnsTargetChecker(cname_target=TARGET, apex_ip=APEX_IP, lookup=exploding)
    result = checker.check_target("example.com", expected_record="A")

    assert result.points_to_platform is False
    assert result.error.startswith("DNS lookup failed")


def test_check_both_reports_each_variant():
    records = {
        ("example.com", "A"): [APEX_IP],
        ("www.example.com", "A"): ["203.0.113.9"],
    }
    report = _checker(records).check_both("www.example.com")

    assert report.domain == "www.example.com"
    assert report.apex.hostname == "example.com"
    assert report.www.hostname == "www.example.com"
    assert report.verified is False
    assert report.message == "Apex domain is configured, www subdomain (CNAME) needs configuration"
    assert report.next_steps == ["Add CNAME record: www → storefronts.onrender.com"]
    assert report.as_dict()["overall_status"] == "incomplete"


def test_check_both_verified():
    records = {
        ("example.com", "A"): [APEX_IP],
        ("www.example.com", "CNAME"): [TARGET],
    }
    report = _checker(records).check_both("example.com")

    assert report.verified is True
    assert report.next_steps == []
    assert report.as_dict()["overall_status"] == "verified"


class _Target:
    def __init__(self, text):
        self.text = text

    def to_text(self):
        return self.text


class _CnameRdata:
    def __init__(self, target):
        self.target = _Target(target)


def _resolver(answers):
    class _Resolver:
        lifetime = None

        def resolve(self, hostname, rdtype):
            answer = answers.get((hostname, rdtype))
            if answer is None:
                raise dns.resolver.NoAnswer()
            return answer

    return _Resolver


def test_lookup_records_normalises_cname_targets(monkeypatch):
    answers = {("www.example.com", "CNAME"): [_CnameRdata("Storefronts.OnRender.com.")]}
    monkeypatch.setattr(dns.resolver, "Resolver", _resolver(answers))

    assert lookup_records("www.example.com", "CNAME", 1.0) == ["storefronts.onrender.com"]


def test_lookup_records_treats_missing_answer_as_empty(monkeypatch):
    monkeypatch.setattr(dns.resolver, "Resolver", _resolver({}))
    assert lookup_records("example.com", "A", 1.0) == []
