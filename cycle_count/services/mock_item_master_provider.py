from __future__ import annotations

from decimal import Decimal

from cycle_count.services.item_master_provider import ItemRecord, StockPosition


class MockItemMasterProvider:
    def __init__(self) -> None:
        # item_id, sku, name, unit, category_id, category_name, supplier_id, storage_location_id, tags, active, avg_cost
        self.catalog = [
            ('item-1', 'PRD001', 'Roma Tomatoes', 'kg', 'produce', 'Produce', 'sup-green', 'walk-in', ('perishable',), True, '2.99'),
            ('item-2', 'PRD002', 'Yellow Onions', 'kg', 'produce', 'Produce', 'sup-green', 'dry-store', (), True, '1.15'),
            ('item-3', 'PRD003', 'Romaine Hearts', 'case', 'produce', 'Produce', 'sup-green', 'walk-in', ('perishable',), True, '18.40'),
            ('item-4', 'PRD004', 'Lemons', 'each', 'produce', 'Produce', 'sup-green', 'walk-in', ('bar', 'perishable'), True, '0.35'),
            ('item-5', 'PRD005', 'Flat Leaf Parsley', 'bunch', 'produce', 'Produce', 'sup-green', 'walk-in', ('perishable',), True, '0.89'),
            ('item-6', 'MEA001', 'Chicken Thighs', 'kg', 'meat', 'Meat', 'sup-butcher', 'walk-in', ('perishable', 'high-value'), True, '6.75'),
            ('item-7', 'MEA002', 'Ground Beef 80/20', 'kg', 'meat', 'Meat', 'sup-butcher', 'freezer', ('high-value',), True, '8.20'),
            ('item-8', 'MEA003', 'Pork Belly', 'kg', 'meat', 'Meat', 'sup-butcher', 'freezer', ('high-value',), True, '9.10'),
            ('item-9', 'MEA004', 'Smoked Bacon', 'kg', 'meat', 'Meat', 'sup-butcher', 'walk-in', (), True, '11.50'),
            ('item-10', 'DAI001', 'Whole Milk', 'liter', 'dairy', 'Dairy', 'sup-dairy', 'walk-in', ('perishable',), True, '1.05'),
            ('item-11', 'DAI002', 'Heavy Cream', 'liter', 'dairy', 'Dairy', 'sup-dairy', 'walk-in', ('perishable',), True, '4.30'),
            ('item-12', 'DAI003', 'Unsalted Butter', 'kg', 'dairy', 'Dairy', 'sup-dairy', 'walk-in', (), True, '7.80'),
            ('item-13', 'DAI004', 'Parmesan', 'kg', 'dairy', 'Dairy', 'sup-dairy', 'walk-in', ('high-value',), True, '21.00'),
            ('item-14', 'BEV001', 'Cola Syrup', 'box', 'beverages', 'Beverages', 'sup-drinks', 'bar-area', ('bar',), True, '64.00'),
            ('item-15', 'BEV002', 'Sparkling Water', 'case', 'beverages', 'Beverages', 'sup-drinks', 'bar-area', ('bar',), True, '12.60'),
            ('item-16', 'BEV003', 'Orange Juice', 'liter', 'beverages', 'Beverages', 'sup-drinks', 'walk-in', ('bar', 'perishable'), True, '2.40'),
            ('item-17', 'BEV004', 'House Red Wine', 'bottle', 'alcohol', 'Alcohol', 'sup-wine', 'wine-cellar', ('bar', 'high-value'), True, '9.75'),
            ('item-18', 'BEV005', 'House White Wine', 'bottle', 'alcohol', 'Alcohol', 'sup-wine', 'wine-cellar', ('bar', 'high-value'), True, '8.95'),
            ('item-19', 'BEV006', 'Lager Keg', 'keg', 'alcohol', 'Alcohol', 'sup-drinks', 'bar-area', ('bar', 'high-value'), True, '145.00'),
            ('item-20', 'DRY001', 'Arborio Rice', 'kg', 'dry-goods', 'Dry Goods', 'sup-pantry', 'dry-store', (), True, '3.20'),
            ('item-21', 'DRY002', 'Spaghetti', 'kg', 'dry-goods', 'Dry Goods', 'sup-pantry', 'dry-store', (), True, '1.90'),
            ('item-22', 'DRY003', 'Extra Virgin Olive Oil', 'liter', 'dry-goods', 'Dry Goods', 'sup-pantry', 'dry-store', ('high-value',), True, '10.40'),
            ('item-23', 'DRY004', 'Sea Salt', 'kg', 'dry-goods', 'Dry Goods', 'sup-pantry', 'dry-store', (), True, '1.25'),
            ('item-24', 'DRY005', 'Plain Flour', 'kg', 'dry-goods', 'Dry Goods', 'sup-pantry', 'dry-store', (), True, '0.95'),
            ('item-25', 'DRY006', 'Canned Chickpeas', 'can', 'dry-goods', 'Dry Goods', 'sup-pantry', 'dry-store', (), True, '0.80'),
            ('item-26', 'PRD006', 'Heirloom Carrots', 'kg', 'produce', 'Produce', 'sup-green', 'walk-in', ('perishable',), False, '3.60'),
            ('item-27', 'BEV007', 'Seasonal Cider', 'bottle', 'alcohol', 'Alcohol', 'sup-drinks', 'bar-area', ('bar',), False, '3.10'),
            ('item-28', 'DRY007', 'Saffron', 'gram', 'dry-goods', 'Dry Goods', 'sup-pantry', 'dry-store', ('high-value',), False, '6.50'),
        ]
        self.imports = {
            'IMPORT-BAR-WEEKLY': ['item-14', 'item-15', 'item-17', 'item-18', 'item-19'],
            'IMPORT-HIGH-VALUE': ['item-6', 'item-7', 'item-13', 'item-19', 'item-6'],
        }

    def list_items(self, *, branch_id: str) -> list[ItemRecord]:
        return [
            ItemRecord(
                item_id=item_id,
                sku=sku,
                name=name,
                unit=unit,
                category_id=category_id,
                category_name=category_name,
                supplier_id=supplier_id,
                storage_location_id=storage_location_id,
                tags=tags,
                is_active=active,
            )
            for (
                item_id,
                sku,
                name,
                unit,
                category_id,
                category_name,
                supplier_id,
                storage_location_id,
                tags,
                active,
                _cost,
            ) in self.catalog
        ]

    def list_import_item_ids(self, *, import_ref: str) -> list[str] | None:
        item_ids = self.imports.get(import_ref)
        return list(item_ids) if item_ids is not None else None

    def fetch_stock_positions(self, *, branch_id: str, item_ids: list[str]) -> dict[str, StockPosition]:
        cost_by_item = {row[0]: Decimal(row[-1]) for row in self.catalog}
        branch_offset = sum(ord(char) for char in branch_id) % 7
        positions: dict[str, StockPosition] = {}
        for item_id in item_ids:
            if item_id not in cost_by_item:
                continue
            checksum = sum(ord(char) for char in item_id)
            positions[item_id] = StockPosition(
                theoretical_qty=Decimal((checksum % 40) + 10 + branch_offset),
                average_cost=cost_by_item[item_id],
            )
        return positions
