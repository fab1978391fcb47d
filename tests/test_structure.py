import contextlib
import io
import unittest
from unittest import mock

from strictc.lexer import tokenize
from strictc.model import NodeKind
from strictc import structure
from strictc.structure import build, declarators, is_code


def build_from(text, path="demo.c"):
    source = tokenize(path, text)
    tree, summary, errors = build(source)
    return source, tree, summary, errors


ORDERED_FILE = """\
#include <stdint.h>
#define LIMIT 4
typedef uint8_t count_t;
static count_t g_count;
void demo_run(void);
void demo_run(void)
{
}
"""


class TreeBuilderTests(unittest.TestCase):
    def test_function_definition(self):
        _, tree, summary, errors = build_from("int main(void)\n{\n    return 0;\n}\n")
        self.assertEqual(errors, [])
        functions = tree.of_kind(NodeKind.FUNCTION_DEFINITION)
        self.assertEqual([f.name for f in functions], ["main"])
        self.assertEqual(len(summary.functions), 1)

    def test_else_if_chain_nests_under_else(self):
        text = (
            "void f(void)\n{\n    if (a) {\n        b();\n    } else if (c) {\n        d();\n    }\n}\n"
        )
        _, tree, _, _ = build_from(text)
        outer = [n for n in tree.of_kind(NodeKind.STATEMENT) if n.keyword == "if"][0]
        else_node = [tree.node(c) for c in outer.children if tree.node(c).keyword == "else"][0]
        nested = tree.children(else_node)[0]
        self.assertEqual(nested.keyword, "if")

    def test_long_else_if_ladder(self):
        arms = "".join("    else if (g_a == %d)\n    {\n        g_b = %d;\n    }\n" % (n, n) for n in range(1, 1000))
        text = "void demo_run(void)\n{\n    if (g_a == 0)\n    {\n    }\n" + arms + "}\n"
        _, tree, _, errors = build_from(text)
        self.assertEqual(errors, [])
        ifs = [n for n in tree.of_kind(NodeKind.STATEMENT) if n.keyword == "if"]
        elses = [n for n in tree.of_kind(NodeKind.STATEMENT) if n.keyword == "else"]
        self.assertEqual((len(ifs), len(elses)), (1000, 999))
        self.assertEqual(tree.parent(ifs[-1]).keyword, "else")
        self.assertEqual(ifs[0].last, ifs[-1].last)

    def test_recursion_limit_falls_back_to_flat_tree(self):
        real_sequence = structure._Builder.sequence

        def too_deep(builder, lo, hi, parent):
            if hi > lo:
                raise RecursionError("maximum recursion depth exceeded")
            return real_sequence(builder, lo, hi, parent)

        with mock.patch.object(structure._Builder, "sequence", too_deep), \
                contextlib.redirect_stderr(io.StringIO()) as err:
            _, tree, _, errors = build_from("void demo_run(void)\n{\n}\n")
        self.assertEqual(errors, [])
        self.assertEqual([n.kind for n in tree.walk()], [NodeKind.FILE, NodeKind.BRACE_BLOCK])
        self.assertIn("nesting too deep", err.getvalue())

    def test_do_while_spans_its_condition(self):
        source, tree, _, _ = build_from("void f(void)\n{\n    do\n    {\n    } while (g_a);\n}\n")
        node = [n for n in tree.of_kind(NodeKind.STATEMENT) if n.keyword == "do"][0]
        self.assertEqual(source.tokens[node.last - 1].text, ";")

    def test_labels_and_gotos(self):
        text = "void f(void)\n{\n    goto f_done;\nf_done:\n    return;\n}\n"
        _, _, summary, _ = build_from(text)
        fn = summary.functions[0]
        self.assertEqual([name for name, _ in fn.labels], ["f_done"])
        self.assertEqual([name for name, _ in fn.gotos], ["f_done"])

    def test_unclosed_brace_is_reported_and_recovered(self):
        source, tree, _, errors = build_from("void f(void)\n{\n    if (a) {\n}\n")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].rule_id, "STRUCTURE.UNBALANCED")
        self.assertEqual(errors[0].span.line, 2)
        last = tree.node(tree.node(tree.root).children[-1])
        self.assertEqual(last.kind, NodeKind.BRACE_BLOCK)
        self.assertEqual(last.last, len(source.tokens))

    def test_stray_closer(self):
        _, _, _, errors = build_from("}\nint a;\n")
        self.assertEqual(len(errors), 1)
        self.assertEqual(errors[0].span.line, 1)

    def test_mismatched_closer(self):
        _, _, _, errors = build_from("void f(void)\n{\n    a[1);\n}\n")
        self.assertEqual(len(errors), 1)
        self.assertIn("does not close", errors[0].message)

    def test_comment_documents_following_declaration(self):
        _, tree, _, _ = build_from("/* Counter. */\nuint8_t g_a;\n")
        decl = tree.of_kind(NodeKind.DECLARATION)[0]
        self.assertIsNotNone(decl.comment)
        self.assertEqual(tree.node(decl.comment).kind, NodeKind.COMMENT_BLOCK)

    def test_typedef_struct(self):
        _, tree, _, _ = build_from("typedef struct\n{\n    uint8_t value;\n} st_pair_t;\n")
        typedef = tree.of_kind(NodeKind.TYPE_DEFINITION)[0]
        self.assertEqual(typedef.name, "st_pair_t")
        self.assertEqual(len(tree.of_kind(NodeKind.DECLARATION)), 1)


class SummaryTests(unittest.TestCase):
    def test_sections_in_file_order(self):
        _, _, summary, _ = build_from(ORDERED_FILE)
        self.assertEqual(
            [section for section, _ in summary.sections],
            ["include", "macro", "type", "global", "prototype", "function"],
        )

    def test_include_guard(self):
        _, _, summary, _ = build_from("#ifndef FOO_H\n#define FOO_H\nint a;\n#endif\n", path="foo.h")
        self.assertTrue(summary.is_header)
        self.assertEqual(summary.guard[0], "FOO_H")
        # The guard's #define is not a macro section.
        self.assertNotIn("macro", [section for section, _ in summary.sections])

    def test_if_zero_region(self):
        _, _, summary, _ = build_from("#if 0\nint a;\n#endif\n")
        self.assertEqual(len(summary.dead_regions), 1)

    def test_declarators_share_specifiers(self):
        source = tokenize("demo.c", "static uint8_t *p_a, b[4];")
        code = [i for i, t in enumerate(source.tokens) if is_code(t)]
        decls = declarators(source.tokens, code)
        self.assertEqual([d.name for d in decls], ["p_a", "b"])
        self.assertEqual(decls[0].pointer_depth, 1)
        self.assertTrue(decls[1].is_array)
        self.assertEqual(decls[1].specifiers, ("static", "uint8_t"))


if __name__ == "__main__":
    unittest.main()
