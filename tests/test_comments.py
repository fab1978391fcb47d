import unittest

from tests.support import run_rule


def lines(diagnostics):
    return [d.span.line for d in diagnostics]


class CommentRuleTests(unittest.TestCase):
    def test_line_comment_on_its_own_line(self):
        diags = run_rule("COMMENTS.SINGLE_LINE_BESIDE_CODE", "// standalone\nuint8_t g_a; // beside\n")
        self.assertEqual(lines(diags), [1])

    def test_nested_block_comment(self):
        diags = run_rule("COMMENTS.NESTED", "/* outer /* inner */\n")
        self.assertEqual([(d.span.line, d.span.column) for d in diags], [(1, 10)])
        self.assertEqual(run_rule("COMMENTS.NESTED", "/* plain */\n"), [])

    def test_capitalization(self):
        text = (
            "/* lowercase start. */\n"
            "\n"
            "/* g_count holds it. */\n"
            "\n"
            "/* fallthrough */\n"
            "\n"
            "/* Good. */\n"
            "/* continued here. */\n"
        )
        self.assertEqual(lines(run_rule("COMMENTS.CAPITALIZATION", text)), [1])

    def test_capitalization_ignores_suppression_directives(self):
        text = "/* strictc-disable WHITESPACE.TAB */\n\n/* strictc-enable */\n"
        self.assertEqual(run_rule("COMMENTS.CAPITALIZATION", text), [])

    def test_blank_line_before(self):
        text = (
            "uint8_t g_a;\n"
            "/* Second. */\n"
            "uint8_t g_b;\n"
            "\n"
            "/* Third. */\n"
            "uint8_t g_c; /* Beside. */\n"
            "void demo_run(void)\n"
            "{\n"
            "    /* First in block. */\n"
            "}\n"
        )
        self.assertEqual(lines(run_rule("COMMENTS.BLANK_LINE_BEFORE", text)), [2])

    def test_space_after_delimiter(self):
        text = "/*Missing. */\n//Missing\n/** Doc. */\n/* Fine. */\n//// Banner\n"
        diags = run_rule("COMMENTS.SPACE_AFTER_DELIMITER", text)
        self.assertEqual(
            [d.message for d in diags],
            ["missing space after '/*'", "missing space after '//'"],
        )

    def test_commented_out_code(self):
        text = "/* g_a = 1; */\n// return 0;\n/* Count of retries. */\n/*\n * if (g_a)\n */\n"
        self.assertEqual(lines(run_rule("COMMENTS.COMMENTED_OUT_CODE", text)), [1, 2, 4])


if __name__ == "__main__":
    unittest.main()
