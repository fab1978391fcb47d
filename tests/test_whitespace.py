import unittest

from tests.support import run_rule


def in_function(body):
    return "void demo_run(void)\n{\n" + body + "}\n"


def positions(diagnostics):
    return [(d.span.line, d.span.column) for d in diagnostics]


class TokenSpacingTests(unittest.TestCase):
    def test_double_space_between_type_and_name(self):
        diags = run_rule("WHITESPACE.DOUBLE_SPACE", "uint8_t  x;\n")
        self.assertEqual(positions(diags), [(1, 8)])
        self.assertEqual(diags[0].message, "2 spaces where one is expected")
        self.assertEqual(diags[0].fix, " ")
        self.assertEqual(run_rule("WHITESPACE.DOUBLE_SPACE", "uint8_t x;\n"), [])

    def test_double_space_ignores_indentation_and_comment_alignment(self):
        text = in_function("    g_a = 1;  /* Aligned. */\n")
        self.assertEqual(run_rule("WHITESPACE.DOUBLE_SPACE", text), [])

    def test_operator_spacing(self):
        diags = run_rule("WHITESPACE.OPERATOR_SPACING", in_function("    g_a=1;\n    g_b = g_c+1;\n"))
        self.assertEqual(
            [d.message for d in diags],
            ["operator '=' needs a space on both sides", "operator '+' needs a space on both sides"],
        )

    def test_operator_spacing_one_side(self):
        diags = run_rule("WHITESPACE.OPERATOR_SPACING", in_function("    g_a= 1;\n"))
        self.assertEqual([d.message for d in diags], ["operator '=' needs a space before it"])

    def test_unary_and_pointer_operators_are_not_binary(self):
        text = in_function("    uint8_t *p_x = &g_a;\n    *p_x = -1;\n    g_b = (uint8_t *)p_x;\n")
        self.assertEqual(run_rule("WHITESPACE.OPERATOR_SPACING", text), [])

    def test_ternary_colon(self):
        diags = run_rule("WHITESPACE.OPERATOR_SPACING", in_function("    g_a = g_b ? 1:2;\n"))
        self.assertEqual([d.message for d in diags], ["operator ':' needs a space on both sides"])

    def test_unary_spacing(self):
        diags = run_rule("WHITESPACE.UNARY_SPACING", in_function("    g_a = ! g_b;\n    g_c = -g_d;\n"))
        self.assertEqual([d.message for d in diags], ["no space expected after unary '!'"])

    def test_comma_spacing(self):
        diags = run_rule("WHITESPACE.COMMA_SPACING", in_function("    demo_call(g_a ,g_b);\n"))
        self.assertEqual([d.message for d in diags], ["space before ','", "missing space after ','"])

    def test_semicolon_spacing(self):
        text = in_function("    g_a = 1 ;\n    for (;;)\n    {\n    }\n")
        diags = run_rule("WHITESPACE.SEMICOLON_SPACING", text)
        self.assertEqual(positions(diags), [(3, 12)])

    def test_keyword_paren(self):
        text = in_function("    if(g_a)\n    {\n    }\n    while  (g_b)\n    {\n    }\n    if (g_c)\n    {\n    }\n")
        diags = run_rule("WHITESPACE.KEYWORD_PAREN", text)
        self.assertEqual([d.span.line for d in diags], [3, 6])

    def test_call_paren(self):
        diags = run_rule("WHITESPACE.CALL_PAREN", in_function("    demo_call (1);\n    demo_call(2);\n"))
        self.assertEqual([d.message for d in diags], ["no space expected between 'demo_call' and '('"])

    def test_paren_inner(self):
        diags = run_rule("WHITESPACE.PAREN_INNER", in_function("    demo_call( 1);\n    demo_call(2 );\n"))
        self.assertEqual([d.message for d in diags], ["space after '('", "space before ')'"])


class BraceTests(unittest.TestCase):
    def test_open_brace_on_own_line(self):
        diags = run_rule("WHITESPACE.BRACE_OPEN_LINE", "void demo_run(void) {\n}\n")
        self.assertEqual([d.message for d in diags], ["opening brace must be on its own line"])
        self.assertEqual(run_rule("WHITESPACE.BRACE_OPEN_LINE", "void demo_run(void)\n{\n}\n"), [])

    def test_open_brace_end_of_line_placement(self):
        diags = run_rule("WHITESPACE.BRACE_OPEN_LINE", "void demo_run(void)\n{\n}\n", placement="end_of_line")
        self.assertEqual([d.message for d in diags], ["opening brace must end the line that opens the block"])

    def test_close_brace_followed_by_else(self):
        text = in_function("    if (g_a)\n    {\n        g_b = 1;\n    } else\n    {\n        g_b = 2;\n    }\n")
        diags = run_rule("WHITESPACE.BRACE_CLOSE_LINE", text)
        self.assertEqual([d.message for d in diags], ["'else' must not follow '}' on the same line"])

    def test_close_brace_must_start_line(self):
        diags = run_rule("WHITESPACE.BRACE_CLOSE_LINE", in_function("    if (g_a)\n    {\n        g_b = 1; }\n"))
        self.assertEqual([d.message for d in diags], ["closing brace must start its line"])

    def test_close_brace_exceptions(self):
        text = (
            "typedef struct\n{\n    uint8_t value;\n} st_pair_t;\n"
            + in_function("    do\n    {\n        g_a++;\n    } while (g_a);\n")
        )
        self.assertEqual(run_rule("WHITESPACE.BRACE_CLOSE_LINE", text), [])


class LineTests(unittest.TestCase):
    def test_line_length(self):
        text = "/* " + "x" * 24 + " */\n"
        diags = run_rule("WHITESPACE.LINE_LENGTH", text, max_line_length=20)
        self.assertEqual(positions(diags), [(1, 21)])
        self.assertEqual(diags[0].message, "line is 30 columns long (limit 20)")
        self.assertEqual(run_rule("WHITESPACE.LINE_LENGTH", text), [])

    def test_tab(self):
        diags = run_rule("WHITESPACE.TAB", "\tuint8_t g_a;\n")
        self.assertEqual(positions(diags), [(1, 1)])
        self.assertEqual(diags[0].span.end - diags[0].span.start, 1)

    def test_trailing(self):
        diags = run_rule("WHITESPACE.TRAILING", "uint8_t g_a;   \nuint8_t g_b;\n")
        self.assertEqual(positions(diags), [(1, 13)])

    def test_indent(self):
        diags = run_rule("WHITESPACE.INDENT", in_function("   g_a = 1;\n"))
        self.assertEqual([d.message for d in diags], ["indentation of 3 is not a multiple of 4"])

    def test_indent_skips_continuation_lines(self):
        text = in_function("    g_a = demo_call(1,\n                   2);\n")
        self.assertEqual(run_rule("WHITESPACE.INDENT", text), [])

    def test_mixed_line_endings(self):
        diags = run_rule("WHITESPACE.LINE_ENDING", "a;\r\nb;\nc;\r\n")
        self.assertEqual([d.span.line for d in diags], [2])
        self.assertEqual(diags[0].message, "inconsistent line ending LF in a file using CRLF")

    def test_bare_cr(self):
        diags = run_rule("WHITESPACE.LINE_ENDING", "a;\rb;\r")
        self.assertEqual([d.message for d in diags], ["line endings use bare CR"])

    def test_eof_newline(self):
        self.assertEqual(len(run_rule("WHITESPACE.EOF_NEWLINE", "uint8_t g_a;")), 1)
        self.assertEqual(run_rule("WHITESPACE.EOF_NEWLINE", "uint8_t g_a;\n"), [])
        self.assertEqual(run_rule("WHITESPACE.EOF_NEWLINE", ""), [])

    def test_blank_lines(self):
        diags = run_rule("WHITESPACE.BLANK_LINES", "a;\n\n\n\nb;\n")
        self.assertEqual([d.span.line for d in diags], [4])
        self.assertEqual(diags[0].message, "3 consecutive blank lines (limit 2)")
        self.assertEqual(run_rule("WHITESPACE.BLANK_LINES", "a;\n\n\nb;\n"), [])


if __name__ == "__main__":
    unittest.main()
