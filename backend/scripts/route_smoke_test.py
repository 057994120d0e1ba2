# -*- coding: utf-8 -*-
"""Smoke test against a running server: persona/mode resolution, then live routing.

Run from backend/ with the API up:  python scripts/route_smoke_test.py [--live]
--live also calls /api/route, which needs a reachable LLM provider.
"""
import sys
import time

sys.path.insert(0, ".")
from scripts.test_utils import CheckList, ensure_utf8, make_resolve_call, make_route_call, section_labels

ensure_utf8()

LIVE = "--live" in sys.argv

CASES = [
    {
        "text": "@QA write a fizzbuzz function",
        "persona": "chaos_engineer",
        "mode": "DIRECT",
    },
    {
        "text": "Act as QA, audit this: eval(input)",
        "persona": "chaos_engineer",
        "mode": "CRITIQUE",
    },
    {
        "text": "Plan our next sprint",
        "persona": "scrum_master",
        "mode": "SPRINT_PLANNING",
    },
    {
        "text": "Design a multi-region architecture for our payments service",
        "persona": "staff_engineer",
        "mode": "ARCHITECT",
    },
    {
        "text": "@sec thoughts on our login page?",
        "persona": "security_auditor",
        "mode": "CRITIQUE",
    },
]

cl = CheckList()

print("=== RESOLVE ===")
for case in CASES:
    print(f"\n> {case['text']}")
    d = make_resolve_call(case["text"])
    cl.check(f"persona={case['persona']}", d.get("persona") == case["persona"], f"got {d.get('persona')}")
    cl.check(
        f"mode={case['mode']}",
        d.get("mode") == case["mode"],
        f"got {d.get('mode')} via {d.get('heuristic')}",
    )

if LIVE:
    print("\n=== ROUTE (live) ===")
    for case in CASES:
        print(f"\n> {case['text']}")
        expected = [s["label"] for s in make_resolve_call(case["text"]).get("skeleton", [])]
        t0 = time.perf_counter()
        code, d = make_route_call(case["text"])
        lat = (time.perf_counter() - t0) * 1000
        if code != 200:
            cl.check("HTTP 200", False, f"http={code} detail={d.get('detail')}")
            continue
        labels = section_labels(d.get("markdown", ""))
        cl.check("sections match skeleton", labels == expected, f"{labels} vs {expected}")
        cl.check("status valid", d.get("status") == "valid", f"attempts={d.get('attempts')} lat={lat:.0f}ms")
        sys.stdout.flush()

cl.summary()
sys.exit(cl.exit_code())
