# Imports:
from enum import Enum

from coords import Coords, Orientation, XY
from streets import StreetGrid


class BlockType(Enum):
    EMPTY = "empty"
    RESIDENTIAL = "residential"


class Block:
    """
    A square piece of city that gets stitched into the full map.
    """

    def __init__(self, block_type: BlockType, grid: StreetGrid):
        self.block_type = block_type
        self.grid = grid

    @classmethod
    def empty(cls, size):
        return cls(BlockType.EMPTY, StreetGrid(size))

    @classmethod
    def basic_with_roads(cls, size):
        """
        A block ringed by one-way roads.

        Traffic runs east along the bottom row, north up the right column,
        west along the top row and south down the left column, so a lone
        block is a closed counter-clockwise loop.
        """
        size = XY(*size)
        grid = StreetGrid(size)
        grid.draw_east(0, 0, size.x)
        grid.draw_west(size.y - 1, 0, size.x)
        grid.draw_south(0, 0, size.y)
        grid.draw_north(size.x - 1, 0, size.y)
        return cls(BlockType.RESIDENTIAL, grid)

    @classmethod
    def with_parking(cls, size, parking_distance):
        """
        A road-ringed block with parking bays along the inside of each road,
        one every `parking_distance` cells.
        """
        size = XY(*size)
        block = cls.basic_with_roads(size)
        for x in range(size.x):
            if x % parking_distance == 0 and 0 < x < size.x - parking_distance:
                block.grid.make_parking_cell(Coords(XY(x, 1), Orientation.NORTH))
                block.grid.make_parking_cell(Coords(XY(x, size.y - 2), Orientation.SOUTH))
        for y in range(size.y):
            if y % parking_distance == 0 and 0 < y < size.y - parking_distance:
                block.grid.make_parking_cell(Coords(XY(1, y), Orientation.EAST))
                block.grid.make_parking_cell(Coords(XY(size.x - 2, y), Orientation.WEST))
        return block


class BlockMap:
    """
    A rectangle of equally sized blocks, stitched into one StreetGrid.
    """

    def __init__(self, size, block_size):
        self.size = XY(*size)
        self.block_size = XY(*block_size)
        self.blocks = [[Block.empty(self.block_size) for _ in range(self.size.y)]
                       for _ in range(self.size.x)]

    def set_block(self, xy, block: Block):
        if not self.size.in_bounds(xy):
            raise ValueError(f"Block position {tuple(xy)} invalid for map of {tuple(self.size)}")
        if block.grid.size != self.block_size:
            raise ValueError(f"Block size {tuple(block.grid.size)} invalid, expected {tuple(self.block_size)}")
        self.blocks[xy[0]][xy[1]] = block

    def stitch(self) -> StreetGrid:
        """
        Copy every block's cells into one big grid, tagging each cell with
        the block it came from.
        """
        big = StreetGrid(XY(self.size.x * self.block_size.x, self.size.y * self.block_size.y))
        for bxy in self.size.iterate():
            block = self.blocks[bxy.x][bxy.y]
            origin = XY(bxy.x * self.block_size.x, bxy.y * self.block_size.y)
            for xy, cell in block.grid.iterate_cells():
                cell = cell.copy()
                cell.block = bxy
                big.replace_cell(origin + xy, cell)
        return big


def generate_city(rng, width_blocks=4, height_blocks=3, block_size=16,
                  parking_interval=1, block_probability=0.7, parking_probability=0.6) -> StreetGrid:
    """
    Build a random city: interior block slots are filled with probability
    `block_probability`, and a filled slot gets parking bays with
    probability `parking_probability`. The outer ring of slots stays empty.

    Args:
        rng: Random stream (the model's `random`).
        width_blocks: Number of block columns.
        height_blocks: Number of block rows.
        block_size: Side length of each square block.
        parking_interval: Spacing between parking bays inside a block.
        block_probability: Chance that an interior slot gets a block.
        parking_probability: Chance that a placed block has parking.

    Returns: The stitched StreetGrid.
    """
    map_size = XY(width_blocks, height_blocks)
    size = XY(block_size, block_size)
    block_map = BlockMap(map_size, size)
    for xy in map_size.iterate_interior():
        if rng.random() >= block_probability:
            continue
        if rng.random() < parking_probability:
            block = Block.with_parking(size, parking_interval)
        else:
            block = Block.basic_with_roads(size)
        block_map.set_block(xy, block)
    return block_map.stitch()
