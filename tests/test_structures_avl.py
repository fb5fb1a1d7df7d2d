import sys
import os
import random

# Setup de importação
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from ecogrid.core.structures.avl_tree import AVLTree


def _assert_avl(node, low=None, high=None) -> int:
    """Valida ordem de BST e fator de balanceamento; retorna a altura da subárvore."""
    if node is None:
        return 0
    if low is not None:
        assert node.key > low
    if high is not None:
        assert node.key < high
    left = _assert_avl(node.left, low, node.key)
    right = _assert_avl(node.right, node.key, high)
    assert abs(left - right) <= 1, f"Nó {node.key} desbalanceado ({left} x {right})"
    assert node.height == 1 + max(left, right)
    return node.height


def test_avl_balancing():
    print("--- Iniciando Teste da AVL ---")

    avl = AVLTree()

    # Inserção sequencial que degeneraria uma BST comum
    keys_to_insert = [10, 20, 30, 40, 50, 25]
    print(f"Inserindo chaves na ordem: {keys_to_insert}")
    for key in keys_to_insert:
        avl.insert(key, {"nodeId": f"n{key}"})

    # A raiz não pode continuar sendo 10: houve rotações
    print(f"Raiz da árvore após balanceamento: {avl.root.key}")
    assert avl.root.key == 30

    print(f"Altura da árvore: {avl.height}")
    assert avl.height == 3
    _assert_avl(avl.root)

    assert avl.search(40) == {"nodeId": "n40"}
    assert avl.search(99) is None
    print(">> SUCESSO: Altura logarítmica e busca correta.")


def test_avl_random_sequence_stays_balanced():
    rng = random.Random(7)
    avl = AVLTree()
    keys = rng.sample(range(10000), 500)

    for key in keys:
        avl.insert(key, key * 2)
        _assert_avl(avl.root)

    assert len(avl) == 500
    assert [k for k, _ in avl.items()] == sorted(keys)
    for key in keys[:50]:
        assert avl.search(key) == key * 2


def test_existing_key_overwrites_value():
    avl = AVLTree()
    for key in (5, 3, 8):
        avl.insert(key, "old")
    root_before = avl.root

    avl.insert(3, "new")

    assert avl.search(3) == "new"
    assert len(avl) == 3
    assert avl.root is root_before


def test_composite_keys_do_not_collide():
    # Mesmo score arredondado, ids diferentes: os dois ficam no índice
    avl = AVLTree()
    avl.insert((9000, "b"), "B")
    avl.insert((9000, "a"), "A")
    avl.insert((500, "z"), "Z")

    assert avl.get_all_values() == ["Z", "A", "B"]
    assert avl.search((9000, "a")) == "A"


def test_operations_counter():
    avl = AVLTree()
    for key in range(16):
        avl.insert(key, key)
    assert avl.operations > 0

    avl.reset_operations()
    avl.search(15)
    # Busca em árvore de 16 nós balanceada: no máximo a altura em comparações
    assert 1 <= avl.operations <= avl.height


if __name__ == "__main__":
    test_avl_balancing()
    test_avl_random_sequence_stays_balanced()
    test_existing_key_overwrites_value()
    test_composite_keys_do_not_collide()
    test_operations_counter()
