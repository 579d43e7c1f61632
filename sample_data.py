"""
Built-in catalog data.

SAMPLE_PRODUCTS is served by the product listing when the database is
unreachable. DEMO_PRODUCTS / DEMO_DELIVERY_ZONES are what POST /seed loads.
"""
from datetime import datetime, timezone

_SAMPLE_DATE = datetime(2024, 1, 1, tzinfo=timezone.utc).isoformat()

DEMO_PRODUCTS = [
    {
        "name": "Portland Cement",
        "description": "High-quality Portland cement for all construction needs",
        "category": "Cement",
        "unit": "Bags",
        "price": 420,
        "prices": {"standard": 420, "primary": 400, "secondary": 380},
        "specifications": {"grade": "OPC 53", "strength": "53 MPa", "pack_size": "50 Kg"},
        "images": ["https://images.unsplash.com/photo-1504917595217-d4dc5ebe6122?w=400"],
        "stock": 500,
    },
    {
        "name": "PPC Cement",
        "description": "Portland pozzolana cement for plastering and masonry",
        "category": "Cement",
        "unit": "Bags",
        "price": 350,
        "prices": {"standard": 350, "primary": 320, "secondary": 330},
        "specifications": {"grade": "PPC", "pack_size": "50 Kg"},
        "images": ["https://images.unsplash.com/photo-1589939705384-5185137a7f0f?w=400"],
        "stock": 400,
    },
    {
        "name": "Red Clay Bricks",
        "description": "Kiln-fired red bricks for load bearing walls",
        "category": "Bricks & Blocks",
        "unit": "Pieces",
        "price": 9,
        "prices": {"standard": 9, "primary": 8, "secondary": 8.5},
        "specifications": {"size": "9 x 4 x 3 in"},
        "images": ["https://images.unsplash.com/photo-1590069261209-f8e9b8642343?w=400"],
        "stock": 20000,
    },
    {
        "name": "Stone Aggregate Mix",
        "description": "Premium stone aggregate mix for immediate use",
        "category": "Stone Aggregates",
        "unit": "Tons",
        "price": 4500,
        "prices": {"standard": 4500, "primary": 4300, "secondary": 4100},
        "specifications": {"grade": "M25", "aggregate": "20mm down"},
        "images": ["https://images.unsplash.com/photo-1558618666-fcd25c85cd64?w=400"],
        "stock": 40,
    },
    {
        "name": "Construction Sand",
        "description": "Clean, graded sand perfect for construction and masonry work",
        "category": "Sand & Aggregates",
        "unit": "Tons",
        "price": 1800,
        "prices": {"standard": 1800, "primary": 1700, "secondary": 1600},
        "specifications": {"type": "River Sand", "gradation": "Zone II", "moisture": "< 5%"},
        "images": ["https://images.unsplash.com/photo-1632778149955-e80f8ceca2e8?w=400"],
        "stock": 60,
    },
    {
        "name": "Tile Adhesive",
        "description": "Polymer modified adhesive for floor and wall tiles",
        "category": "Roof and Tiles Bonding",
        "unit": "Bags",
        "price": 550,
        "prices": {"standard": 550, "primary": 520, "secondary": 500},
        "specifications": {"coverage": "50 sq ft per bag", "pack_size": "20 Kg"},
        "images": ["https://images.unsplash.com/photo-1615971677499-5467cbab01c0?w=400"],
        "stock": 150,
    },
]

SAMPLE_PRODUCTS = [
    {
        "id": f"507f1f77bcf86cd7994390{11 + i}",
        **product,
        "availability": True,
        "created_at": _SAMPLE_DATE,
        "updated_at": _SAMPLE_DATE,
    }
    for i, product in enumerate(DEMO_PRODUCTS)
]

DEMO_DELIVERY_ZONES = [
    {"pincode": "421302", "area": "Kalher", "city": "Bhiwandi", "state": "Maharashtra",
     "delivery_charge": 60, "estimated_delivery_days": 0},
    {"pincode": "421302", "area": "Kasheli", "city": "Bhiwandi", "state": "Maharashtra",
     "delivery_charge": 60, "estimated_delivery_days": 0},
    {"pincode": "421302", "area": "Dapoda", "city": "Bhiwandi", "state": "Maharashtra",
     "delivery_charge": 75, "estimated_delivery_days": 0,
     "special_instructions": "Industrial and warehousing area."},
    {"pincode": "421302", "area": "Anjurphata", "city": "Bhiwandi", "state": "Maharashtra",
     "delivery_charge": 80, "estimated_delivery_days": 0, "is_active": False},
    {"pincode": "421305", "area": "Kamatghar", "city": "Bhiwandi", "state": "Maharashtra",
     "delivery_charge": 100, "estimated_delivery_days": 1},
]


def sample_categories() -> list:
    return sorted({p["category"] for p in SAMPLE_PRODUCTS})
