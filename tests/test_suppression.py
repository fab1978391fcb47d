import unittest

from strictc.config import AnalysisConfig
from strictc.lexer import tokenize
from strictc.model import DirectiveKind
from strictc.registry import default_registry
from strictc.suppression import parse_directives, resolve
from tests.support import analyze, only, rule_ids


def directives_in(text):
    source = tokenize("demo.c", text)
    return parse_directives(source, AnalysisConfig().compiled_suppression_pattern())


def lines(report):
    return [d.span.line for d in report.diagnostics]


class ParseDirectiveTests(unittest.TestCase):
    def test_rule_ids_separated_by_commas(self):
        found = directives_in("/* strictc-disable WHITESPACE.TAB, NAMING.TYPE_SUFFIX */\n")
        self.assertEqual(len(found), 1)
        self.assertEqual(found[0].kind, DirectiveKind.RANGE_START)
        self.assertEqual(found[0].rule_ids, ("WHITESPACE.TAB", "NAMING.TYPE_SUFFIX"))

    def test_bare_directives(self):
        found = directives_in("// strictc-disable-next-line\n/* strictc-disable-file */\n")
        self.assertEqual([d.kind for d in found], [DirectiveKind.NEXT_LINE, DirectiveKind.FILE_WIDE])
        self.assertEqual([d.rule_ids for d in found], [(), ()])

    def test_directives_outside_comments_are_ignored(self):
        self.assertEqual(directives_in('const char *p_s = "strictc-disable-file";\n'), [])


class ResolveTests(unittest.TestCase):
    def test_enable_with_ids_closes_matching_range_only(self):
        found = directives_in(
            "/* strictc-disable WHITESPACE.TAB */\n"
            "/* strictc-disable WHITESPACE.TRAILING */\n"
            "/* strictc-enable WHITESPACE.TAB */\n"
        )
        result = resolve(found, default_registry())
        self.assertEqual([(lo, hi) for lo, hi, _ in result.ranges], [(1, 3)])
        self.assertEqual(rule_ids(result.problems), ["SUPPRESSION.UNTERMINATED"])
        self.assertEqual(result.problems[0].span.line, 2)

    def test_bare_enable_closes_every_range(self):
        found = directives_in(
            "/* strictc-disable WHITESPACE.TAB */\n"
            "/* strictc-disable WHITESPACE.TRAILING */\n"
            "/* strictc-enable */\n"
        )
        result = resolve(found, default_registry())
        self.assertEqual(len(result.ranges), 2)
        self.assertEqual(result.problems, [])


class SuppressedAnalysisTests(unittest.TestCase):
    def test_next_line(self):
        text = (
            "/* Demo. */\n"
            "/* strictc-disable-next-line WHITESPACE.TAB */\n"
            "\tuint8_t g_a;\n"
            "\tuint8_t g_b;\n"
        )
        report = analyze(text, config=only("WHITESPACE.TAB"))
        self.assertEqual(lines(report), [4])
        self.assertEqual(report.suppressed, 1)

    def test_range_is_line_inclusive(self):
        text = (
            "/* strictc-disable WHITESPACE.TAB */\n"
            "\tuint8_t g_a;\n"
            "\tuint8_t g_b;\n"
            "/* strictc-enable WHITESPACE.TAB */\n"
            "\tuint8_t g_c;\n"
        )
        report = analyze(text, config=only("WHITESPACE.TAB"))
        self.assertEqual(lines(report), [5])
        self.assertEqual(report.suppressed, 2)

    def test_range_keeps_other_rules(self):
        text = (
            "/* strictc-disable WHITESPACE.TAB */\n"
            "\tuint8_t g_a; \n"
            "/* strictc-enable WHITESPACE.TAB */\n"
        )
        report = analyze(text, config=only("WHITESPACE.TAB", "WHITESPACE.TRAILING"))
        self.assertEqual(rule_ids(report.diagnostics), ["WHITESPACE.TRAILING"])
        self.assertEqual(lines(report), [2])
        self.assertEqual(report.suppressed, 1)

    def test_disable_file_without_rules(self):
        report = analyze("/* strictc-disable-file */\n\tuint8_t g_a;   \n",
                         config=only("WHITESPACE.TAB", "WHITESPACE.TRAILING"))
        self.assertEqual(report.diagnostics, ())
        self.assertEqual(report.suppressed, 2)

    def test_unterminated_range_suppresses_nothing(self):
        report = analyze("/* strictc-disable WHITESPACE.TAB */\n\tuint8_t g_a;\n", config=only("WHITESPACE.TAB"))
        self.assertEqual(rule_ids(report.diagnostics), ["SUPPRESSION.UNTERMINATED", "WHITESPACE.TAB"])
        self.assertEqual(lines(report), [1, 2])

    def test_unmatched_end(self):
        report = analyze("/* strictc-enable */\n", config=only())
        self.assertEqual(rule_ids(report.diagnostics), ["SUPPRESSION.UNMATCHED_END"])

    def test_unknown_rule(self):
        report = analyze("/* strictc-disable-next-line NAMING.NOPE */\nuint8_t g_a;\n", config=only())
        self.assertEqual(
            [d.message for d in report.diagnostics],
            ["suppression names unknown rule 'NAMING.NOPE'"],
        )

    def test_suppression_problems_cannot_be_suppressed(self):
        report = analyze("/* strictc-disable-file */\n/* strictc-enable */\n", config=only())
        self.assertEqual(rule_ids(report.diagnostics), ["SUPPRESSION.UNMATCHED_END"])
        self.assertEqual(report.suppressed, 0)


if __name__ == "__main__":
    unittest.main()
