import pytest

from tree_repo import NodeNotFoundError

from .helpers import build_sample


def _ids(nodes):
    return [node.id for node in nodes]


@pytest.mark.asyncio
async def test_empty_table(tree):
    assert await tree.get_tree() == []
    assert await tree.get_node(1) is None
    assert await tree.get_children(1) == []


@pytest.mark.asyncio
async def test_get_tree_is_preorder(tree):
    ids = await build_sample(tree)

    nodes = await tree.get_tree()

    assert _ids(nodes) == [ids["A"], ids["B"], ids["D"], ids["C"], ids["R"]]
    assert [node.payload["name"] for node in nodes] == ["A", "B", "D", "C", "R"]


@pytest.mark.asyncio
async def test_get_node_returns_record_with_payload(tree):
    root = await tree.insert_root({"name": "Root", "tags": ["a", "b"], "weight": 1.5})

    node = await tree.get_node(root)

    assert node.to_record() == {
        "id": root,
        "parent_id": None,
        "lft": 1,
        "rgt": 2,
        "depth": 0,
        "name": "Root",
        "tags": ["a", "b"],
        "weight": 1.5,
    }
    assert node.is_leaf
    assert node.size == 1


@pytest.mark.asyncio
async def test_descendants_strict_and_inclusive(tree):
    ids = await build_sample(tree)

    assert _ids(await tree.get_descendants(ids["A"])) == [ids["B"], ids["D"], ids["C"]]
    assert _ids(await tree.get_descendants(ids["A"], include_self=True)) == [
        ids["A"],
        ids["B"],
        ids["D"],
        ids["C"],
    ]
    assert await tree.get_descendants(ids["D"]) == []
    assert _ids(await tree.get_descendants(ids["R"], include_self=True)) == [ids["R"]]


@pytest.mark.asyncio
async def test_descendants_match_interval_definition(tree):
    ids = await build_sample(tree)
    everything = await tree.get_tree()

    for node in everything:
        expected = [other.id for other in everything if node.lft < other.lft < node.rgt]
        assert _ids(await tree.get_descendants(node.id)) == expected


@pytest.mark.asyncio
async def test_ancestors_root_first(tree):
    ids = await build_sample(tree)

    assert _ids(await tree.get_ancestors(ids["D"])) == [ids["A"], ids["B"]]
    assert _ids(await tree.get_ancestors(ids["D"], include_self=True)) == [
        ids["A"],
        ids["B"],
        ids["D"],
    ]
    assert await tree.get_ancestors(ids["R"]) == []


@pytest.mark.asyncio
async def test_ancestors_and_descendants_are_inverse(tree):
    ids = await build_sample(tree)
    await tree.insert_child(ids["D"], {"name": "F"})

    for node in await tree.get_tree():
        for ancestor in await tree.get_ancestors(node.id):
            assert node.id in _ids(await tree.get_descendants(ancestor.id))
        for descendant in await tree.get_descendants(node.id):
            assert node.id in _ids(await tree.get_ancestors(descendant.id))


@pytest.mark.asyncio
async def test_children_in_sibling_order(tree):
    ids = await build_sample(tree)

    assert _ids(await tree.get_children(ids["A"])) == [ids["B"], ids["C"]]
    assert _ids(await tree.get_children(ids["B"])) == [ids["D"]]
    assert await tree.get_children(ids["C"]) == []


@pytest.mark.asyncio
async def test_relative_queries_need_existing_node(tree):
    await build_sample(tree)

    with pytest.raises(NodeNotFoundError):
        await tree.get_descendants(999)
    with pytest.raises(NodeNotFoundError):
        await tree.get_ancestors(999, include_self=True)
