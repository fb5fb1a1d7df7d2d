# ecogrid/core/structures/b_plus_tree.py
from typing import Any, Dict, List, Optional


class BPlusNode:
    """
    Nó da Árvore B+.
    - Se folha: 'values' é paralelo a 'keys' e 'next_leaf' aponta para a folha à direita.
    - Se interno: 'children' contém len(keys) + 1 referências para outros BPlusNode.
    """
    def __init__(self, is_leaf: bool = False):
        self.is_leaf = is_leaf
        self.keys: List[float] = []
        self.values: List[Any] = []
        self.children: List["BPlusNode"] = []
        self.next_leaf: Optional["BPlusNode"] = None

    def serialize(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"isLeaf": self.is_leaf, "keys": list(self.keys)}
        if self.is_leaf:
            data["values"] = list(self.values)
        else:
            data["children"] = [child.serialize() for child in self.children]
        return data

    @classmethod
    def deserialize(cls, data: Dict[str, Any]) -> "BPlusNode":
        node = cls(is_leaf=bool(data["isLeaf"]))
        node.keys = list(data["keys"])
        if node.is_leaf:
            node.values = list(data.get("values") or [])
            if len(node.values) != len(node.keys):
                raise ValueError("Folha serializada com número de valores diferente do número de chaves")
        else:
            node.children = [cls.deserialize(child) for child in data.get("children") or []]
            if len(node.children) != len(node.keys) + 1:
                raise ValueError("Nó interno serializado com número de filhos inconsistente")
        return node


class BPlusTree:
    """
    Árvore B+ de séries temporais (chave = timestamp em ms).

    - Um nó é dividido quando atinge `order` chaves; o ponto de divisão é order // 2.
    - Folhas: a chave do meio é copiada para o pai e permanece na nova folha da direita.
    - Internos: a chave do meio sobe e sai dos dois lados.
    - Chaves duplicadas são mantidas na ordem de inserção.

    A persistência fica fora da estrutura (ver PersistenceManager); aqui só
    existem serialize/deserialize para registros simples.
    """
    def __init__(self, order: int = 4):
        if order < 2:
            raise ValueError("A ordem da árvore deve ser pelo menos 2")
        self.order = order
        self.root: Optional[BPlusNode] = BPlusNode(is_leaf=True)

    def insert(self, key: float, value: Any):
        """Insere um par chave/valor, dividindo nós cheios no caminho de descida."""
        if self.root is None:
            self.root = BPlusNode(is_leaf=True)

        # Lógica de split da raiz (árvore cresce um nível)
        if len(self.root.keys) >= self.order:
            new_root = BPlusNode(is_leaf=False)
            new_root.children.append(self.root)
            self._split_child(new_root, 0)
            self.root = new_root

        self._insert_non_full(self.root, key, value)

    def _insert_non_full(self, node: BPlusNode, key: float, value: Any):
        if node.is_leaf:
            # Depois das chaves iguais: preserva a ordem de chegada dos duplicados
            pos = self._upper_bound(node.keys, key)
            node.keys.insert(pos, key)
            node.values.insert(pos, value)
            return

        pos = self._upper_bound(node.keys, key)
        if len(node.children[pos].keys) >= self.order:
            self._split_child(node, pos)
            if key >= node.keys[pos]:
                pos += 1

        self._insert_non_full(node.children[pos], key, value)

    def _split_child(self, parent: BPlusNode, index: int):
        node_to_split = parent.children[index]
        mid_point = self.order // 2
        new_node = BPlusNode(is_leaf=node_to_split.is_leaf)

        if node_to_split.is_leaf:
            # Split de folha: separador copiado
            promoted_key = node_to_split.keys[mid_point]

            new_node.keys = node_to_split.keys[mid_point:]
            new_node.values = node_to_split.values[mid_point:]
            node_to_split.keys = node_to_split.keys[:mid_point]
            node_to_split.values = node_to_split.values[:mid_point]

            # Lista ligada
            new_node.next_leaf = node_to_split.next_leaf
            node_to_split.next_leaf = new_node
        else:
            # Split interno: separador promovido
            promoted_key = node_to_split.keys[mid_point]

            new_node.keys = node_to_split.keys[mid_point + 1:]
            new_node.children = node_to_split.children[mid_point + 1:]
            node_to_split.keys = node_to_split.keys[:mid_point]
            node_to_split.children = node_to_split.children[:mid_point + 1]

        parent.keys.insert(index, promoted_key)
        parent.children.insert(index + 1, new_node)

    @staticmethod
    def _upper_bound(keys: List[float], key: float) -> int:
        """Índice da primeira chave estritamente maior que `key`."""
        pos = 0
        while pos < len(keys) and keys[pos] <= key:
            pos += 1
        return pos

    @staticmethod
    def _lower_bound(keys: List[float], key: float) -> int:
        """Índice da primeira chave maior ou igual a `key`."""
        pos = 0
        while pos < len(keys) and keys[pos] < key:
            pos += 1
        return pos

    def _find_first_leaf(self, key: float) -> Optional[BPlusNode]:
        # Duplicados do separador podem ter ficado à esquerda dele
        current = self.root
        if current is None:
            return None
        while not current.is_leaf:
            current = current.children[self._lower_bound(current.keys, key)]
        return current

    def search(self, key: float) -> Optional[Any]:
        """Busca exata. Retorna o valor (o primeiro inserido, se houver duplicados) ou None."""
        leaf = self._find_first_leaf(key)
        while leaf:
            for i, k in enumerate(leaf.keys):
                if k == key:
                    return leaf.values[i]
                if k > key:
                    return None
            leaf = leaf.next_leaf
        return None

    def range_query(self, min_key: float, max_key: float) -> List[Dict[str, Any]]:
        """Busca intervalo [min_key, max_key] percorrendo a lista ligada de folhas."""
        results: List[Dict[str, Any]] = []
        current = self._find_first_leaf(min_key)

        while current:
            for i, key in enumerate(current.keys):
                if key > max_key:
                    return results
                if key >= min_key:
                    results.append({"key": key, "value": current.values[i]})
            current = current.next_leaf
        return results

    def range_search(self, start_key: float, end_key: float) -> List[Any]:
        """Apenas os valores do intervalo (atalho usado pelo pipeline de dados)."""
        return [entry["value"] for entry in self.range_query(start_key, end_key)]

    # --- Serialização ---

    def serialize(self) -> Dict[str, Any]:
        return {
            "order": self.order,
            "root": self.root.serialize() if self.root else None,
        }

    @classmethod
    def deserialize(cls, data: Dict[str, Any]) -> "BPlusTree":
        tree = cls(order=int(data["order"]))
        if data.get("root"):
            tree.root = BPlusNode.deserialize(data["root"])
            tree._rebuild_leaf_links()
        else:
            tree.root = None
        return tree

    def _rebuild_leaf_links(self):
        """Os ponteiros next não são serializados: religa as folhas em ordem."""
        leaves: List[BPlusNode] = []
        self._collect_leaves(self.root, leaves)
        for left, right in zip(leaves, leaves[1:]):
            left.next_leaf = right
        if leaves:
            leaves[-1].next_leaf = None

    def _collect_leaves(self, node: BPlusNode, leaves: List[BPlusNode]):
        if node.is_leaf:
            leaves.append(node)
        else:
            for child in node.children:
                self._collect_leaves(child, leaves)

    # --- Introspecção / visualização ---

    def get_tree_structure(self) -> Optional[Dict[str, Any]]:
        if self.root is None:
            return None
        return self._node_structure(self.root)

    def _node_structure(self, node: BPlusNode) -> Dict[str, Any]:
        structure: Dict[str, Any] = {
            "isLeaf": node.is_leaf,
            "keys": list(node.keys),
            "keyCount": len(node.keys),
        }
        if node.is_leaf:
            structure["values"] = [{"key": k, "value": v} for k, v in zip(node.keys, node.values)]
        else:
            structure["children"] = [self._node_structure(child) for child in node.children]
        return structure

    def get_stats(self) -> Dict[str, int]:
        stats = {"order": self.order, "totalKeys": 0, "height": 0, "leafCount": 0}
        if self.root is None:
            return stats

        stack = [(self.root, 1)]
        while stack:
            node, depth = stack.pop()
            stats["height"] = max(stats["height"], depth)
            stats["totalKeys"] += len(node.keys)
            if node.is_leaf:
                stats["leafCount"] += 1
            else:
                stack.extend((child, depth + 1) for child in node.children)
        return stats
