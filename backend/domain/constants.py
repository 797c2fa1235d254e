"""
Domain constants used across services/routers.
"""

# Header carrying the anonymous cart id generated by the storefront client
CART_SESSION_HEADER = "X-Session-Id"

# AbacatePay webhook events that carry a PIX status change
WEBHOOK_PAID_EVENTS = ("billing.paid", "pixQrCode.paid")

# Catalog inserted by POST /api/seed on an empty database
SAMPLE_PRODUCTS = [
    {
        "name": "Beholder 2",
        "image_url": "https://images.unsplash.com/photo-1538481199705-c710c4e965fc?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "9.56",
        "original_price": "39.99",
        "discount": 76,
        "description": "Beholder 2 - Agora voce faz parte do Ministerio!",
        "category": "adventure",
    },
    {
        "name": "Gravity Circuit",
        "image_url": "https://images.unsplash.com/photo-1511512578047-dfb367046420?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "8.66",
        "original_price": "52.49",
        "discount": 84,
        "description": "Acao e plataforma com mecanicas de combo",
        "category": "action",
    },
    {
        "name": "Nomad Survival",
        "image_url": "https://images.unsplash.com/photo-1550745165-9bc0b252726f?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "4.99",
        "original_price": "19.99",
        "discount": 75,
        "description": "Sobreviva em um mundo hostil",
        "category": "survival",
    },
    {
        "name": "S.W.I.N.E.",
        "image_url": "https://images.unsplash.com/photo-1493711662062-fa541f7f75a3?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "7.50",
        "original_price": "24.99",
        "discount": 70,
        "description": "Estrategia tatica em tempo real",
        "category": "strategy",
    },
    {
        "name": "Cyberpunk 2077",
        "image_url": "https://images.unsplash.com/photo-1542751371-adc38448a05e?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "29.99",
        "original_price": "59.99",
        "discount": 50,
        "description": "RPG de mundo aberto em Night City",
        "category": "rpg",
    },
    {
        "name": "Elden Ring",
        "image_url": "https://images.unsplash.com/photo-1551103782-8ab07afd45c1?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "35.99",
        "original_price": "69.99",
        "discount": 49,
        "description": "Acao RPG de FromSoftware",
        "category": "rpg",
    },
    {
        "name": "Hogwarts Legacy",
        "image_url": "https://images.unsplash.com/photo-1518709268805-4e9042af9f23?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "39.99",
        "original_price": "79.99",
        "discount": 50,
        "description": "Viva sua fantasia em Hogwarts",
        "category": "rpg",
    },
    {
        "name": "Red Dead Redemption 2",
        "image_url": "https://images.unsplash.com/photo-1560419015-7c427e8ae5ba?w=400&h=500&fit=crop",
        "platform": "Steam",
        "region": "Global",
        "price": "24.99",
        "original_price": "59.99",
        "discount": 58,
        "description": "Aventura epica no velho oeste",
        "category": "adventure",
    },
    {
        "name": "FIFA 24",
        "image_url": "https://images.unsplash.com/photo-1493711662062-fa541f7f75a3?w=400&h=500&fit=crop",
        "platform": "EA",
        "region": "Global",
        "price": "34.99",
        "original_price": "69.99",
        "discount": 50,
        "description": "O melhor futebol do mundo",
        "category": "sports",
    },
    {
        "name": "Fortnite Bundle",
        "image_url": "https://images.unsplash.com/photo-1538481199705-c710c4e965fc?w=400&h=500&fit=crop",
        "platform": "Epic",
        "region": "Global",
        "price": "19.99",
        "original_price": "39.99",
        "discount": 50,
        "description": "Pack exclusivo Fortnite",
        "category": "action",
    },
]
