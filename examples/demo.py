import sys
import os

# Ensure branchly is in path
sys.path.append(os.path.join(os.path.dirname(__file__), ".."))

from branchly.frontend import FlowBuilder
from branchly.engine import FlowEngine
from branchly.analysis import run_path_tests


def main():
    print("Building flow...")
    builder = FlowBuilder("pizza", "Pizza Order")
    builder.state(total=0, delivery=False)

    builder.node("start", "Welcome to Pizza Palace")
    builder.node("choose", "Choose a pizza", "Your total is ${total}.")
    builder.connect("start", "choose")

    builder.node("margherita", "Margherita", actions=[{"target": "total", "expression": "total + 8"}], auto_advance=True)
    builder.node("pepperoni", "Pepperoni", actions=[{"target": "total", "expression": "total + 10"}], auto_advance=True)
    builder.connect("choose", "margherita", label="Margherita ($8)")
    builder.connect("choose", "pepperoni", label="Pepperoni ($10)")

    builder.node("how", "Delivery or takeout?", "Your total is ${total}.")
    builder.connect("margherita", "how")
    builder.connect("pepperoni", "how")

    builder.node("pay", "Pay", auto_advance=True)
    builder.connect("how", "pay", label="Delivery (+$3)", actions=[
        {"target": "delivery", "value": True},
        {"target": "total", "expression": "total + 3"},
    ])
    builder.connect("how", "pay", label="Takeout")

    builder.node("deliver", "On its way", "Paid ${total}. Your pizza is on its way.")
    builder.node("pickup", "Ready for pickup", "Paid ${total}. See you at the counter.")
    builder.connect("pay", "deliver", condition="delivery")
    builder.connect("pay", "pickup")

    flow = builder.build()
    print(f"Flow built with {len(flow.nodes)} nodes.")

    print("\nRunning flow...")
    engine = FlowEngine(flow)
    engine.on_auto_advance(lambda e: print(f"  (auto-advance {e['from'].id} -> {e['to'].id})"))
    result = engine.start()
    print(f"At: {result.node.node.title}")

    result = engine.next()
    for choice_label in ("Pepperoni ($10)", "Delivery (+$3)"):
        print(f"At: {result.node.node.title} - {result.node.node.content}")
        choice = next(c for c in result.choices if c.label == choice_label)
        print(f"  -> {choice.label}")
        result = engine.next(choice.id)

    print(f"At: {result.node.node.title} - {result.node.node.content}")
    print(f"Complete: {result.is_complete}, state: {result.state}")

    print("\nTesting all paths...")
    print(run_path_tests(flow, verbose=True).text)


if __name__ == "__main__":
    main()
