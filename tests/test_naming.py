from __future__ import annotations

from azapi_module_kit.hcl import escape_template, format_key, heredoc, quote
from azapi_module_kit.naming import is_hcl_identifier, to_snake_case


class TestToSnakeCase:
    def test_conversions(self) -> None:
        cases = {
            "camelCase": "camel_case",
            "PascalCase": "pascal_case",
            "snake_case": "snake_case",
            "balance-similar-node-groups": "balance_similar_node_groups",
            "foo.bar": "foo_bar",
            "foo bar": "foo_bar",
            "HTTPClient": "http_client",
            "simple": "simple",
            "agentPoolProfiles": "agent_pool_profiles",
            "AdminGroupObjectIDs": "admin_group_object_ids",
            "HTTPServer": "http_server",
            "JSONList": "json_list",
            "MyAPIs": "my_apis",
            "1stValue": "field_1st_value",
            "": "",
        }
        for value, expected in cases.items():
            assert to_snake_case(value) == expected, value

    def test_identifier_check(self) -> None:
        assert is_hcl_identifier("subnet_id")
        assert is_hcl_identifier("foo-bar")
        assert not is_hcl_identifier("dns.prefix")
        assert not is_hcl_identifier("1x")
        assert not is_hcl_identifier("")


class TestHclFormatting:
    def test_quote_escapes(self) -> None:
        assert quote('say "hi"') == '"say \\"hi\\""'
        assert quote("line\nbreak") == '"line\\nbreak"'
        assert quote("use ${var.x} and %{if}") == '"use $${var.x} and %%{if}"'

    def test_escape_template(self) -> None:
        assert escape_template("${a}") == "$${a}"
        assert escape_template("plain $ sign") == "plain $ sign"

    def test_format_key(self) -> None:
        assert format_key("displayName") == "displayName"
        assert format_key("dns.prefix") == '"dns.prefix"'

    def test_heredoc(self) -> None:
        rendered = heredoc("First line.\n\n- `x` - Item.\n", 2)

        assert rendered == "<<-DESCRIPTION\n    First line.\n\n    - `x` - Item.\n  DESCRIPTION"
