"""Tests for placeholder substitution."""

from casenotify.services.notification_templates import apply_template


class TestApplyTemplate:
    def test_no_variables_is_identity(self) -> None:
        text = "Hello {{name}}"
        assert apply_template(text, {}) == text
        assert apply_template(text, None) == text

    def test_replaces_every_occurrence(self) -> None:
        result = apply_template("{{name}}, {{name}}!", {"name": "Amina"})
        assert result == "Amina, Amina!"

    def test_unknown_placeholder_left_literal(self) -> None:
        result = apply_template("Dear {{name}}, ref {{ref}}", {"name": "Karim"})
        assert result == "Dear Karim, ref {{ref}}"

    def test_values_are_stringified(self) -> None:
        assert apply_template("Amount: {{amount}} DZD", {"amount": 1500}) == "Amount: 1500 DZD"

    def test_keys_are_literal(self) -> None:
        result = apply_template("{{a.b}} and {{a+b}}", {"a.b": "dot", "a+b": "plus"})
        assert result == "dot and plus"

    def test_substituted_value_is_not_reinterpreted_as_pattern(self) -> None:
        assert apply_template("{{x}}", {"x": "$1 \\g<0>"}) == "$1 \\g<0>"
