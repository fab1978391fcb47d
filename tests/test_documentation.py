import unittest

from tests.support import run_rule

ORDERED = """\
/* Demo module. */
#include <stdint.h>
#define DEMO_LIMIT 4
typedef uint8_t count_t;
static count_t g_count;
void demo_run(void);
void demo_run(void)
{
}
"""


class FileHeaderTests(unittest.TestCase):
    def test_missing_header(self):
        diags = run_rule("DOCUMENTATION.FILE_HEADER", "uint8_t g_a;\n")
        self.assertEqual([d.span.line for d in diags], [1])

    def test_block_comment_header(self):
        self.assertEqual(run_rule("DOCUMENTATION.FILE_HEADER", "\n/* Demo module. */\nuint8_t g_a;\n"), [])

    def test_line_comment_and_directive_do_not_count(self):
        self.assertEqual(len(run_rule("DOCUMENTATION.FILE_HEADER", "// Demo module.\n")), 1)
        self.assertEqual(len(run_rule("DOCUMENTATION.FILE_HEADER", "/* strictc-disable-file */\n")), 1)

    def test_empty_file(self):
        self.assertEqual(run_rule("DOCUMENTATION.FILE_HEADER", ""), [])


class FunctionHeaderTests(unittest.TestCase):
    def test_undocumented_functions(self):
        text = (
            "/* Runs the demo. */\n"
            "void demo_run(void)\n{\n}\n"
            "\n"
            "void demo_stop(void)\n{\n}\n"
            "\n"
            "// Starts the demo.\n"
            "void demo_go(void)\n{\n}\n"
        )
        diags = run_rule("DOCUMENTATION.FUNCTION_HEADER", text)
        self.assertEqual(
            [d.message for d in diags],
            ["function 'demo_stop' has no header comment", "function 'demo_go' has no header comment"],
        )

    def test_prototypes_are_not_checked(self):
        self.assertEqual(run_rule("DOCUMENTATION.FUNCTION_HEADER", "void demo_run(void);\n"), [])


class TypeCommentTests(unittest.TestCase):
    def test_uncommented_type(self):
        text = (
            "/* Pair of values. */\n"
            "typedef struct\n{\n    uint8_t value;\n} st_pair_t;\n"
            "\n"
            "typedef uint8_t count_t;\n"
        )
        diags = run_rule("DOCUMENTATION.TYPE_COMMENT", text)
        self.assertEqual([d.message for d in diags], ["type 'count_t' has no comment"])


class SectionOrderTests(unittest.TestCase):
    def test_ordered_file(self):
        self.assertEqual(run_rule("DOCUMENTATION.SECTION_ORDER", ORDERED), [])

    def test_include_after_global(self):
        diags = run_rule("DOCUMENTATION.SECTION_ORDER", "uint8_t g_a;\n#include <stdint.h>\n")
        self.assertEqual([d.message for d in diags], ["include after global"])
        self.assertEqual(diags[0].span.line, 2)


if __name__ == "__main__":
    unittest.main()
