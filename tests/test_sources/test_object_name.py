"""Tests for ObjectName parsing."""

import pytest

from bestats.sources.object_name import ObjectName


class TestParse:
    def test_domain_and_properties_keep_order(self):
        name = ObjectName.parse("com.tibco.be:type=Agent,agentId=1,subType=Entity,entityId=be.gen.Order")

        assert name.domain == "com.tibco.be"
        assert [k for k, _ in name.properties] == ["type", "agentId", "subType", "entityId"]
        assert name.key_property("entityId") == "be.gen.Order"

    def test_str_round_trips(self):
        text = "com.tibco.be:service=Cache,name=dist-unlimited-bs-readOnly"
        assert str(ObjectName.parse(text)) == text

    def test_quoted_value_may_contain_delimiters(self):
        name = ObjectName.parse('com.tibco.be:service=Cache,name="a,b=c:d"')

        assert name.as_dict()["name"] == '"a,b=c:d"'
        assert name.key_property("name") == "a,b=c:d"

    def test_escaped_quote_inside_quoted_value(self):
        name = ObjectName.parse(r'd:name="say \"hi\", then go"')
        assert name.key_property("name") == r'say \"hi\", then go'

    def test_missing_property_is_none(self):
        assert ObjectName.parse("d:k=v").key_property("other") is None

    @pytest.mark.parametrize("text", [
        "no-colon",
        "domain:",
        "domain:novalue",
        "domain:=v",
    ])
    def test_invalid_names(self, text):
        with pytest.raises(ValueError):
            ObjectName.parse(text)

    def test_names_are_hashable_and_comparable(self):
        a = ObjectName.parse("d:k=v")
        b = ObjectName.parse("d:k=v")

        assert a == b
        assert len({a, b}) == 1
