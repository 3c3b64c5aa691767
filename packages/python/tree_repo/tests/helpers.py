"""Shared builders and snapshots for the tree tests."""


async def snapshot_intervals(tree):
    """``{id: (lft, rgt, depth, parent_id)}`` for every stored node."""
    return {
        node.id: (node.lft, node.rgt, node.depth, node.parent_id)
        for node in await tree.get_tree()
    }


async def build_sample(tree):
    """
    A
    +- B
    |  +- D
    +- C
    R (second root)
    """
    a = await tree.insert_root({"name": "A"})
    b = await tree.insert_child(a, {"name": "B"})
    c = await tree.insert_child(a, {"name": "C"})
    d = await tree.insert_child(b, {"name": "D"})
    r = await tree.insert_root({"name": "R"})
    return {"A": a, "B": b, "C": c, "D": d, "R": r}
