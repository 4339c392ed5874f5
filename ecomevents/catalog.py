"""Reference data the simulator draws from: products and customers."""

from dataclasses import dataclass, field
from typing import List


@dataclass
class Product:
    id: str
    name: str
    category: str
    price: float
    stock: int


@dataclass(frozen=True)
class Customer:
    id: str
    name: str
    email: str


def default_products() -> List[Product]:
    return [
        Product("p1001", "Smartphone", "electronics", 699.99, 50),
        Product("p1002", "Laptop", "electronics", 1299.99, 25),
        Product("p1003", "Headphones", "electronics", 149.99, 100),
        Product("p1004", "Running Shoes", "sports", 89.99, 75),
        Product("p1005", "Coffee Maker", "home", 79.99, 30),
    ]


def default_customers() -> List[Customer]:
    return [
        Customer("c101", "Alice Johnson", "alice@example.com"),
        Customer("c102", "Bob Smith", "bob@example.com"),
        Customer("c103", "Carol Williams", "carol@example.com"),
        Customer("c104", "David Brown", "david@example.com"),
    ]


@dataclass
class Catalog:
    """Process-wide product and customer tables. Only Product.stock changes after startup."""

    products: List[Product] = field(default_factory=default_products)
    customers: List[Customer] = field(default_factory=default_customers)

    def product(self, product_id: str) -> Product:
        for p in self.products:
            if p.id == product_id:
                return p
        raise KeyError(product_id)

    def customer_ids(self) -> List[str]:
        return [c.id for c in self.customers]
