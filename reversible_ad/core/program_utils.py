"""
Program display utilities
Render reversible programs as indented text and summarise their structure.
"""

from collections import Counter
from typing import Dict, List, Union

from .program import Program, iter_statements
from .statements import Block, Call, Statement


def _render(stmt: Statement, indent: int, lines: List[str]) -> None:
    pad = "    " * indent
    if isinstance(stmt, Block):
        if stmt.check is False:
            lines.append(f"{pad}@invcheckoff begin")
            for s in stmt.stmts:
                _render(s, indent + 1, lines)
            lines.append(f"{pad}end")
        else:
            for s in stmt.stmts:
                _render(s, indent, lines)
        return

    lines.append(pad + stmt.describe())
    blocks = stmt.blocks()
    if not blocks:
        return
    for label, block in blocks:
        if label:
            lines.append(f"{pad}{label}")
        _render(block, indent + 1, lines)
    lines.append(f"{pad}end")


def format_program(node: Union[Program, Statement]) -> str:
    """
    Indented text form of a program or statement.

    Example
    -------
    >>> print(format_program(reversible_plus))
    reversible_plus(x: real, y: real)
        x += y
    """
    lines: List[str] = []
    if isinstance(node, Program):
        lines.append(node.describe())
        _render(node.body, 1, lines)
    else:
        _render(node, 0, lines)
    return "\n".join(lines)


def get_program_stats(program: Program) -> Dict:
    """
    Statement statistics of a program (not printed).

    Returns:
        dict with total statement count, nesting depth, called programs and a
        breakdown by statement kind
    """
    kinds: Counter = Counter()
    depth = 0
    calls = set()
    for path, s in iter_statements(program.body):
        if isinstance(s, Block):
            continue
        kinds[type(s).__name__] += 1
        depth = max(depth, len(path))
        if isinstance(s, Call):
            calls.add(s.program.name)
    return {
        'statements': sum(kinds.values()),
        'max_depth': depth,
        'calls': sorted(calls),
        'kinds': dict(kinds),
    }


def print_program_summary(program: Program, detailed: bool = False) -> Dict:
    """
    Print a program summary.

    Args:
        program: Program to summarise
        detailed: also print the program text and its inverse

    Returns:
        the statistics dict of get_program_stats
    """
    stats = get_program_stats(program)

    print("\n" + "=" * 70)
    print(f"PROGRAM SUMMARY: {program.describe()}")
    print("=" * 70)
    print(f"Statements:         {stats['statements']:,}")
    print(f"Max nesting depth:  {stats['max_depth']}")
    print(f"Calls:              {', '.join(stats['calls']) or '-'}")
    print()
    print("Statement breakdown:")
    total = max(stats['statements'], 1)
    for kind, count in Counter(stats['kinds']).most_common():
        pct = 100.0 * count / total
        print(f"  {kind:12s}: {count:6,} ({pct:5.1f}%)")

    if detailed:
        print()
        print(format_program(program))
        print()
        print(format_program(program.inverse()))

    print("=" * 70 + "\n")
    return stats
