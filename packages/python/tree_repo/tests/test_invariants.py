import random

import pytest

from tree_repo import InvalidOperationError

from .helpers import snapshot_intervals


async def _random_step(tree, rng):
    nodes = await tree.get_tree()
    if not nodes or rng.random() < 0.1:
        await tree.insert_root({"step": "root"})
        return

    action = rng.choice(["child", "child", "move", "move", "delete"])
    node = rng.choice(nodes)

    if action == "child":
        await tree.insert_child(node.id, {"step": "child"})
    elif action == "move":
        subtree = {n.id for n in await tree.get_descendants(node.id, include_self=True)}
        targets = [n for n in nodes if n.id not in subtree]
        if not targets:
            return
        target = rng.choice(targets)
        order_before = [n.id for n in await tree.get_descendants(node.id, include_self=True)]

        moved = await tree.move_subtree(node.id, target.id)

        assert moved.size == node.size
        assert moved.parent_id == target.id
        order_after = [n.id for n in await tree.get_descendants(node.id, include_self=True)]
        assert order_after == order_before
    else:
        cascade = node.is_leaf or rng.random() < 0.5
        if cascade:
            await tree.delete_node(node.id, delete_subtree=True)
        else:
            with pytest.raises(InvalidOperationError):
                await tree.delete_node(node.id, delete_subtree=False)


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [1, 7, 42])
async def test_random_operations_keep_tree_consistent(tree, seed):
    rng = random.Random(seed)

    for _ in range(120):
        await _random_step(tree, rng)
        assert await tree.check_integrity() == []


@pytest.mark.asyncio
@pytest.mark.parametrize("seed", [3, 11])
async def test_rebuild_after_random_operations_keeps_structure(tree, seed):
    rng = random.Random(seed)
    for _ in range(60):
        await _random_step(tree, rng)

    parents_before = {node.id: node.parent_id for node in await tree.get_tree()}
    await tree.rebuild_tree()
    after = await snapshot_intervals(tree)

    assert {node_id: values[3] for node_id, values in after.items()} == parents_before
    assert await tree.check_integrity() == []
    await tree.rebuild_tree()
    assert await snapshot_intervals(tree) == after
