# checkout/product_service/main.py
from fastapi import FastAPI, HTTPException

app = FastAPI(title="Product Service (dev mock)")


PRODUCTS = {
    "P-1001": {"id": "P-1001", "sku": "TSHIRT-BLK", "name": "Cotton T-Shirt", "price": "799.00", "is_active": True},
    "P-1002": {"id": "P-1002", "sku": "JEANS-SLIM", "name": "Slim Jeans", "price": "2800.00", "is_active": True},
    "P-1003": {"id": "P-1003", "sku": "SOCKS-3PK", "name": "Socks, 3 pack", "price": "249.00", "is_active": True},
    "P-1004": {"id": "P-1004", "sku": "CAP-RED", "name": "Baseball Cap", "price": "399.00", "is_active": False},
}


@app.get("/products/{product_id}")
def get_product(product_id: str):
    product = PRODUCTS.get(product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product
