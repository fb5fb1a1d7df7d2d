from typing import Any, List, Optional, Tuple


class AVLNode:
    """
    Nó interno da Árvore AVL.
    Armazena a chave (score ordenável), o valor associado e a altura.
    """
    def __init__(self, key, value):
        self.key = key
        self.value = value
        self.left: Optional["AVLNode"] = None
        self.right: Optional["AVLNode"] = None
        self.height = 1         # Altura inicial do nó é 1


class AVLTree:
    """
    Árvore AVL genérica usada como índice da Camada Lógica do EcoGrid+.
    Garante inserção e busca em O(log n). Não há remoção: quem usa o índice
    reconstrói a árvore inteira quando os dados de origem mudam.
    """
    def __init__(self):
        self.root: Optional[AVLNode] = None
        self.operations = 0     # Contador de passos primitivos (instrumentação)
        self._size = 0

    def __len__(self) -> int:
        return self._size

    def reset_operations(self):
        self.operations = 0

    def insert(self, key, value):
        """Insere (ou sobrescreve) e rebalanceia a árvore automaticamente."""
        self.root = self._insert_recursive(self.root, key, value)

    def search(self, key) -> Optional[Any]:
        """Busca pela chave em O(log n). Retorna o valor ou None."""
        current = self.root
        while current:
            self.operations += 1
            if key == current.key:
                return current.value
            elif key < current.key:
                current = current.left
            else:
                current = current.right
        return None

    @property
    def height(self) -> int:
        return self._get_height(self.root)

    def _insert_recursive(self, node: Optional[AVLNode], key, value) -> AVLNode:
        self.operations += 1

        # 1. Inserção normal de BST
        if not node:
            self._size += 1
            return AVLNode(key, value)

        if key < node.key:
            node.left = self._insert_recursive(node.left, key, value)
        elif key > node.key:
            node.right = self._insert_recursive(node.right, key, value)
        else:
            # Chave já existe: sobrescreve o valor, estrutura não muda
            node.value = value
            return node

        # 2. Atualizar altura do nó ancestral
        node.height = 1 + max(self._get_height(node.left), self._get_height(node.right))

        # 3. Fator de balanceamento
        balance = self._get_balance(node)

        # 4. Rotações

        # Left-Left
        if balance > 1 and key < node.left.key:
            return self._rotate_right(node)

        # Right-Right
        if balance < -1 and key > node.right.key:
            return self._rotate_left(node)

        # Left-Right
        if balance > 1 and key > node.left.key:
            node.left = self._rotate_left(node.left)
            return self._rotate_right(node)

        # Right-Left
        if balance < -1 and key < node.right.key:
            node.right = self._rotate_right(node.right)
            return self._rotate_left(node)

        return node

    # --- Métodos Auxiliares e Rotações ---

    def _get_height(self, node: Optional[AVLNode]) -> int:
        if not node:
            return 0
        return node.height

    def _get_balance(self, node: Optional[AVLNode]) -> int:
        if not node:
            return 0
        return self._get_height(node.left) - self._get_height(node.right)

    def _rotate_left(self, z: AVLNode) -> AVLNode:
        """Rotação simples à esquerda (peso na direita)."""
        self.operations += 1
        y = z.right
        T2 = y.left

        y.left = z
        z.right = T2

        z.height = 1 + max(self._get_height(z.left), self._get_height(z.right))
        y.height = 1 + max(self._get_height(y.left), self._get_height(y.right))

        return y

    def _rotate_right(self, z: AVLNode) -> AVLNode:
        """Rotação simples à direita (peso na esquerda)."""
        self.operations += 1
        y = z.left
        T3 = y.right

        y.right = z
        z.left = T3

        z.height = 1 + max(self._get_height(z.left), self._get_height(z.right))
        y.height = 1 + max(self._get_height(y.left), self._get_height(y.right))

        return y

    def items(self) -> List[Tuple[Any, Any]]:
        """Pares (chave, valor) em ordem crescente de chave."""
        pairs: List[Tuple[Any, Any]] = []
        self._in_order(self.root, pairs)
        return pairs

    def get_all_values(self) -> List[Any]:
        return [value for _, value in self.items()]

    def _in_order(self, node: Optional[AVLNode], pairs: List[Tuple[Any, Any]]):
        if node:
            self._in_order(node.left, pairs)
            pairs.append((node.key, node.value))
            self._in_order(node.right, pairs)
