import os
import tempfile
import unittest
from datetime import date

import yaml

from survey_fixtures import config_data

from survey_pulse.exceptions import ConfigValidationError, ValidationError
from survey_pulse.survey_config import load_config, load_config_text, parse_config


class ParseConfigTests(unittest.TestCase):
    def test_valid_config(self):
        config = parse_config(config_data())
        self.assertEqual([s.slug for s in config.sections], ["demographics", "tools", "feedback"])
        tools_used = next(q for q in config.questions if q.slug == "tools-used")
        self.assertEqual(tools_used.multiple_max, 2)
        self.assertEqual(tools_used.added, date(2026, 1, 1))
        self.assertEqual([o.slug for o in tools_used.options], ["copilot", "cursor", "chatgpt"])

    def test_unknown_section_reference(self):
        data = config_data()
        data["questions"][0]["section"] = "nowhere"
        with self.assertRaises(ConfigValidationError) as ctx:
            parse_config(data)
        self.assertIn(
            'Question "role" references non-existent section "nowhere"', ctx.exception.issues
        )

    def test_duplicate_slugs(self):
        data = config_data()
        data["sections"].append({"slug": "tools", "title": "Again"})
        data["questions"].append(dict(data["questions"][-1]))
        data["questions"][2]["options"].append({"slug": "cursor", "label": "Cursor 2"})
        with self.assertRaises(ConfigValidationError) as ctx:
            parse_config(data)
        issues = ctx.exception.issues
        self.assertIn("Duplicate section slugs found: tools", issues)
        self.assertIn("Duplicate question slugs found: wishlist", issues)
        self.assertIn('Duplicate option slugs found in question "tools-used": cursor', issues)

    def test_empty_sections_rejected(self):
        data = config_data()
        data["sections"] = []
        with self.assertRaises(ConfigValidationError) as ctx:
            parse_config(data)
        self.assertTrue(any(issue.startswith("sections") for issue in ctx.exception.issues))

    def test_unknown_question_type(self):
        data = config_data()
        data["questions"][0]["type"] = "dropdown"
        with self.assertRaises(ConfigValidationError) as ctx:
            parse_config(data)
        self.assertTrue(any(issue.startswith("questions.0.type") for issue in ctx.exception.issues))

    def test_option_type_needs_options(self):
        data = config_data()
        data["questions"][0]["options"] = []
        with self.assertRaises(ConfigValidationError) as ctx:
            parse_config(data)
        self.assertIn(
            'Question "role" of type "single-freeform" needs at least one option',
            ctx.exception.issues,
        )

    def test_freeform_cannot_have_options(self):
        data = config_data()
        data["questions"][-1]["options"] = [{"slug": "a", "label": "A"}]
        with self.assertRaises(ConfigValidationError):
            parse_config(data)

    def test_min_greater_than_max(self):
        data = config_data()
        data["questions"][1]["min"] = 50
        with self.assertRaises(ConfigValidationError) as ctx:
            parse_config(data)
        self.assertIn('Question "years-experience" has min greater than max', ctx.exception.issues)

    def test_multiple_max_must_be_positive(self):
        data = config_data()
        data["questions"][2]["multiple_max"] = 0
        with self.assertRaises(ConfigValidationError):
            parse_config(data)

    def test_config_errors_are_validation_errors(self):
        with self.assertRaises(ValidationError) as ctx:
            parse_config(["not", "a", "mapping"])
        self.assertEqual(ctx.exception.status_code, 400)


class LoadConfigTests(unittest.TestCase):
    def test_load_from_text(self):
        config = load_config_text(yaml.safe_dump(config_data()))
        self.assertEqual(len(config.questions), 6)

    def test_invalid_yaml(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            load_config_text("sections: [unclosed")
        self.assertTrue(ctx.exception.issues[0].startswith("root: invalid YAML"))

    def test_missing_file(self):
        with self.assertRaises(ConfigValidationError) as ctx:
            load_config("nonexistent.yml")
        self.assertEqual(ctx.exception.issues, ["Config file not found: nonexistent.yml"])

    def test_load_from_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "config.yml")
            with open(path, "w", encoding="utf-8") as fh:
                yaml.safe_dump(config_data(), fh)
            config = load_config(path)
        self.assertEqual(config.questions[0].slug, "role")

    def test_bundled_sample_config_is_valid(self):
        root = os.path.join(os.path.dirname(__file__), "..")
        config = load_config(os.path.join(root, "config.yml"))
        self.assertIn("tools-used", [q.slug for q in config.questions])


if __name__ == "__main__":
    unittest.main()
