from video_agent.merkle import MerkleTree
from video_agent.models import PlannedStep

# ---------------------------------------------------------------------------
# Merkle Tree Verification Tests
# ---------------------------------------------------------------------------

def test_merkle_tree_construction_and_verification():
    step1 = PlannedStep(id="s1", capability="analyze_content", params={"user_text": "hello"})
    step2 = PlannedStep(id="s2", capability="generate_script", depends_on=["s1"])

    tree = MerkleTree([step1.model_dump(), step2.model_dump()])

    assert tree.verify_leaf(0, step1.model_dump()) is True
    assert tree.verify_leaf(1, step2.model_dump()) is True

    mutated = step1.model_dump()
    mutated["capability"] = "render_video"
    assert tree.verify_leaf(0, mutated) is False

def test_merkle_tree_empty_has_blank_root():
    tree = MerkleTree()
    assert tree.root == ""
    assert len(tree) == 0

def test_append_returns_index_and_moves_root():
    tree = MerkleTree([{"id": "a"}])
    first_root = tree.root

    index = tree.append({"id": "b"})

    assert index == 1
    assert len(tree) == 2
    assert tree.root != first_root
    assert tree.verify_leaf(1, {"id": "b"})

def test_root_matches_tree_built_in_one_go():
    incremental = MerkleTree()
    for step in ({"id": "a"}, {"id": "b"}, {"id": "c"}):
        incremental.append(step)

    batch = MerkleTree([{"id": "a"}, {"id": "b"}, {"id": "c"}])
    assert incremental.root == batch.root

def test_serialization_ignores_key_order():
    tree = MerkleTree([{"id": "a", "capability": "x"}])
    assert tree.verify_leaf(0, {"capability": "x", "id": "a"})

def test_verify_leaf_out_of_bounds():
    tree = MerkleTree([{"id": "a"}])
    assert tree.verify_leaf(1, {"id": "a"}) is False
    assert tree.verify_leaf(-1, {"id": "a"}) is False

def test_leaves_is_a_copy():
    tree = MerkleTree([{"id": "a"}])
    tree.leaves.append("forged")
    assert len(tree.leaves) == 1
