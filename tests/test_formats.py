import unittest

from schema_walker import formats
from schema_walker.formats import check_format


class DateTimeFormatTests(unittest.TestCase):
    def test_date_is_calendar_correct(self):
        self.assertTrue(check_format("date", "2020-02-29"))
        self.assertFalse(check_format("date", "2021-02-29"))
        self.assertTrue(check_format("date", "1900-02-28"))
        self.assertFalse(check_format("date", "1900-02-29"))
        self.assertTrue(check_format("date", "2000-02-29"))

    def test_date_rejects_bad_shapes(self):
        for bad in ["2020-1-01", "2020-13-01", "2020-00-10", "2020-04-31", "20200101", "2020-01-01T00:00:00Z"]:
            self.assertFalse(formats.is_date(bad), bad)

    def test_date_rejects_non_ascii_digits(self):
        self.assertFalse(formats.is_date("2020-01-١٢"))

    def test_time_with_offsets(self):
        self.assertTrue(formats.is_time("08:30:06Z"))
        self.assertTrue(formats.is_time("08:30:06.283185+01:00"))
        self.assertTrue(formats.is_time("08:30:06z"))
        self.assertFalse(formats.is_time("08:30:06"))          # offset is mandatory
        self.assertFalse(formats.is_time("24:00:00Z"))
        self.assertFalse(formats.is_time("08:30:06+24:00"))

    def test_leap_second_only_at_utc_midnight_edge(self):
        self.assertTrue(formats.is_time("23:59:60Z"))
        self.assertTrue(formats.is_time("15:59:60-08:00"))
        self.assertTrue(formats.is_time("01:29:60+01:30"))
        self.assertFalse(formats.is_time("22:59:60Z"))
        self.assertFalse(formats.is_time("23:59:60+01:00"))

    def test_date_time(self):
        self.assertTrue(check_format("date-time", "1963-06-19T08:30:06.283185Z"))
        self.assertTrue(check_format("date-time", "1963-06-19t08:30:06z"))
        self.assertFalse(check_format("date-time", "1963-06-19 08:30:06Z"))
        self.assertFalse(check_format("date-time", "2021-02-29T00:00:00Z"))

    def test_duration_grammar(self):
        for good in ["P4DT12H30M5S", "P1Y", "P2W", "PT0S", "PT36H", "P1Y2M3DT4H"]:
            self.assertTrue(formats.is_duration(good), good)
        for bad in ["P", "PT", "P1D2H", "P2W1D", "P1YT", "1Y", "PT1D", "P1Y2W"]:
            self.assertFalse(formats.is_duration(bad), bad)


class NetworkFormatTests(unittest.TestCase):
    def test_hostname(self):
        self.assertTrue(formats.is_hostname("www.example.com"))
        self.assertTrue(formats.is_hostname("xn--4gbwdl.xn--wgbh1c"))
        self.assertFalse(formats.is_hostname("-a-host-name-that-starts-with--"))
        self.assertFalse(formats.is_hostname("not_a_valid_host_name"))
        self.assertFalse(formats.is_hostname("a" * 64 + ".com"))
        self.assertFalse(formats.is_hostname(""))

    def test_idn_hostname_contextual_rules(self):
        self.assertTrue(formats.is_idn_hostname("실례.테스트"))
        self.assertTrue(formats.is_idn_hostname("l·l"))
        self.assertFalse(formats.is_idn_hostname("a·l"))
        self.assertTrue(formats.is_idn_hostname("א׳ב"))
        self.assertFalse(formats.is_idn_hostname("׳ב"))
        self.assertTrue(formats.is_idn_hostname("α͵β"))
        self.assertFalse(formats.is_idn_hostname("a͵b"))
        self.assertTrue(formats.is_idn_hostname("・ぁ"))
        self.assertFalse(formats.is_idn_hostname("def・abc"))
        self.assertFalse(formats.is_idn_hostname("̀hello"))
        self.assertFalse(formats.is_idn_hostname("٠۰"))
        self.assertFalse(formats.is_idn_hostname("ab--cd"))

    def test_ip_addresses(self):
        self.assertTrue(check_format("ipv4", "192.168.0.1"))
        self.assertFalse(check_format("ipv4", "256.256.256.256"))
        self.assertFalse(check_format("ipv4", "1.2.3"))
        self.assertTrue(check_format("ipv6", "::1"))
        self.assertTrue(check_format("ipv6", "::ffff:192.168.0.1"))
        self.assertFalse(check_format("ipv6", "fe80::1%eth0"))
        self.assertFalse(check_format("ipv6", " ::1"))
        self.assertFalse(check_format("ipv6", "12345::"))

    def test_email(self):
        self.assertTrue(check_format("email", "joe.bloggs@example.com"))
        self.assertTrue(check_format("email", '"joe bloggs"@example.com'))
        self.assertTrue(check_format("email", "joe@[127.0.0.1]"))
        self.assertTrue(check_format("email", "joe@[IPv6:::1]"))
        self.assertFalse(check_format("email", "2962"))
        self.assertFalse(check_format("email", ".test@example.com"))
        self.assertFalse(check_format("email", "te..st@example.com"))
        self.assertFalse(check_format("email", "joe@[300.0.0.1]"))

    def test_idn_email(self):
        self.assertTrue(check_format("idn-email", "실례@실례.테스트"))
        self.assertFalse(check_format("email", "실례@실례.테스트"))


class UriFormatTests(unittest.TestCase):
    def test_uri_requires_scheme(self):
        self.assertTrue(check_format("uri", "http://foo.bar/?baz=qux#quux"))
        self.assertTrue(check_format("uri", "urn:isbn:0451450523"))
        self.assertFalse(check_format("uri", "//foo.bar/?baz=qux#quux"))
        self.assertFalse(check_format("uri", "http://example.com/a b"))
        self.assertFalse(check_format("uri", "http://example.com:port/"))
        self.assertFalse(check_format("uri", "http://example.com/%zz"))

    def test_uri_reference(self):
        self.assertTrue(check_format("uri-reference", "/abc"))
        self.assertTrue(check_format("uri-reference", "#fragment"))
        self.assertFalse(check_format("uri-reference", "\\\\WINDOWS\\fileshare"))

    def test_iri_accepts_non_ascii(self):
        self.assertTrue(check_format("iri", "http://éxample.com/é"))
        self.assertFalse(check_format("uri", "http://éxample.com/é"))
        self.assertTrue(check_format("iri-reference", "é"))

    def test_uri_template(self):
        self.assertTrue(check_format("uri-template", "http://example.com/dictionary/{term:1}/{term}"))
        self.assertFalse(check_format("uri-template", "http://example.com/dictionary/{term:1}/{term"))


class MiscFormatTests(unittest.TestCase):
    def test_uuid(self):
        self.assertTrue(check_format("uuid", "2EB8AA08-AA98-11EA-B4AA-73B441D16380"))
        self.assertFalse(check_format("uuid", "2eb8aa08-aa98-11ea-b4aa-73b441d1638"))
        self.assertFalse(check_format("uuid", "2eb8aa08aa9811eab4aa73b441d16380"))

    def test_json_pointers(self):
        self.assertTrue(check_format("json-pointer", ""))
        self.assertTrue(check_format("json-pointer", "/foo/bar~0/baz~1/%a"))
        self.assertFalse(check_format("json-pointer", "/foo/bar~"))
        self.assertFalse(check_format("json-pointer", "#/foo"))
        self.assertTrue(check_format("relative-json-pointer", "1"))
        self.assertTrue(check_format("relative-json-pointer", "0#"))
        self.assertTrue(check_format("relative-json-pointer", "1/foo/bar"))
        self.assertFalse(check_format("relative-json-pointer", "/foo/bar"))
        self.assertFalse(check_format("relative-json-pointer", "01/a"))

    def test_regex(self):
        self.assertTrue(check_format("regex", "([abc])+\\s+$"))
        self.assertFalse(check_format("regex", "^(abc]"))

    def test_unknown_formats_pass(self):
        self.assertTrue(check_format("made-up-format", "anything"))
        self.assertNotIn("made-up-format", formats.FORMAT_CHECKERS)


if __name__ == "__main__":
    unittest.main()
