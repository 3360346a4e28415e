"""Pure lattice geometry for the cubic Dots-and-Boxes board.

Nothing here holds state. Points are ``(x, y, z)`` triples, edges are
canonical point pairs and faces are keyed by their sorted corners, so the
same geometry always maps to the same key whatever order it was given in.
"""

from __future__ import annotations

from typing import Iterator, List, Mapping, NamedTuple, Sequence, Tuple, Union


class Point(NamedTuple):
    x: int
    y: int
    z: int


PointLike = Union[Point, Sequence[int], Mapping[str, int]]
LineKey = Tuple[Point, Point]
SquareKey = Tuple[Point, Point, Point, Point]

AXES: Tuple[Point, ...] = (Point(1, 0, 0), Point(0, 1, 0), Point(0, 0, 1))


def _coordinate(value: object) -> int:
    if isinstance(value, bool):
        raise TypeError(f"Coordinate must be an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    raise ValueError(f"Coordinate must be an integer, got {value!r}")


def as_point(value: PointLike) -> Point:
    """Coerce a tuple, list, ``{"x", "y", "z"}`` mapping or Point to a Point.

    Raises ``ValueError``, ``TypeError`` or ``KeyError`` for anything that is
    not three integral coordinates.
    """
    if isinstance(value, Point):
        return value
    if isinstance(value, Mapping):
        return Point(_coordinate(value["x"]), _coordinate(value["y"]), _coordinate(value["z"]))
    x, y, z = value
    return Point(_coordinate(x), _coordinate(y), _coordinate(z))


def points_equal(p1: Point, p2: Point) -> bool:
    return p1 == p2


def is_valid_point(point: Point, grid_size: int) -> bool:
    return all(0 <= c < grid_size for c in point)


def are_points_adjacent(p1: Point, p2: Point) -> bool:
    # Exactly one axis differs, by exactly one.
    deltas = sorted(abs(a - b) for a, b in zip(p1, p2))
    return deltas == [0, 0, 1]


def line_key(p1: Point, p2: Point) -> LineKey:
    return (p1, p2) if p1 <= p2 else (p2, p1)


def square_key(corners: Sequence[Point]) -> SquareKey:
    a, b, c, d = sorted(corners)
    return (a, b, c, d)


def cube_key(position: Point) -> Point:
    return Point(*position)


def line_orientation(p1: Point, p2: Point) -> Union[str, None]:
    """Axis name ('x', 'y' or 'z') an adjacent pair runs along, else None."""
    if not are_points_adjacent(p1, p2):
        return None
    for name, a, b in zip("xyz", p1, p2):
        if a != b:
            return name
    return None


def adjacent_points(point: Point, grid_size: int) -> List[Point]:
    out: List[Point] = []
    for axis in AXES:
        for sign in (1, -1):
            candidate = Point(
                point.x + sign * axis.x,
                point.y + sign * axis.y,
                point.z + sign * axis.z,
            )
            if is_valid_point(candidate, grid_size):
                out.append(candidate)
    return out


def square_edges(corners: Sequence[Point]) -> Tuple[LineKey, ...]:
    """The four bounding edges of a face given its corners in ring order."""
    return tuple(
        line_key(corners[i], corners[(i + 1) % 4]) for i in range(4)
    )


def cube_face_corners(position: Point) -> Tuple[Tuple[Point, ...], ...]:
    """Ring-ordered corners of the six faces of the unit cube at ``position``.

    Order: bottom (z), top (z+1), front (y), back (y+1), left (x), right (x+1).
    """
    x, y, z = position
    return (
        (Point(x, y, z), Point(x + 1, y, z), Point(x + 1, y + 1, z), Point(x, y + 1, z)),
        (
            Point(x, y, z + 1),
            Point(x + 1, y, z + 1),
            Point(x + 1, y + 1, z + 1),
            Point(x, y + 1, z + 1),
        ),
        (Point(x, y, z), Point(x + 1, y, z), Point(x + 1, y, z + 1), Point(x, y, z + 1)),
        (
            Point(x, y + 1, z),
            Point(x + 1, y + 1, z),
            Point(x + 1, y + 1, z + 1),
            Point(x, y + 1, z + 1),
        ),
        (Point(x, y, z), Point(x, y + 1, z), Point(x, y + 1, z + 1), Point(x, y, z + 1)),
        (
            Point(x + 1, y, z),
            Point(x + 1, y + 1, z),
            Point(x + 1, y + 1, z + 1),
            Point(x + 1, y, z + 1),
        ),
    )


def faces_touching_line(p1: Point, p2: Point, grid_size: int) -> List[Tuple[Point, ...]]:
    """In-bounds faces that have the edge ``p1``-``p2`` as one of their sides.

    An edge lies in two coordinate planes and can border a face on either side
    in each, so at most four faces are returned. Non-adjacent input yields [].
    """
    if not are_points_adjacent(p1, p2):
        return []
    start, end = line_key(p1, p2)
    direction = Point(end.x - start.x, end.y - start.y, end.z - start.z)
    faces: List[Tuple[Point, ...]] = []
    for axis in AXES:
        if axis == direction:
            continue
        for sign in (1, -1):
            shift = Point(sign * axis.x, sign * axis.y, sign * axis.z)
            far_end = Point(end.x + shift.x, end.y + shift.y, end.z + shift.z)
            far_start = Point(start.x + shift.x, start.y + shift.y, start.z + shift.z)
            if is_valid_point(far_end, grid_size) and is_valid_point(far_start, grid_size):
                faces.append((start, end, far_end, far_start))
    return faces


def cubes_touching_square(corners: Sequence[Point], grid_size: int) -> List[Point]:
    """Positions of the (one or two) in-bounds cubes that own this face."""
    lo = min(corners)
    hi = max(corners)
    cubes: List[Point] = []
    for axis_index in range(3):
        if lo[axis_index] != hi[axis_index]:
            continue
        # Face is perpendicular to this axis; cubes sit on either side of it.
        for offset in (0, -1):
            coords = list(lo)
            coords[axis_index] += offset
            position = Point(*coords)
            if all(0 <= c < grid_size - 1 for c in position):
                cubes.append(position)
    return cubes


def all_possible_lines(grid_size: int) -> Iterator[LineKey]:
    """Every legal edge of the lattice, in canonical order."""
    for x in range(grid_size):
        for y in range(grid_size):
            for z in range(grid_size):
                start = Point(x, y, z)
                for axis in AXES:
                    end = Point(x + axis.x, y + axis.y, z + axis.z)
                    if is_valid_point(end, grid_size):
                        yield (start, end)


def all_cube_positions(grid_size: int) -> Iterator[Point]:
    size = max(grid_size - 1, 0)
    for x in range(size):
        for y in range(size):
            for z in range(size):
                yield Point(x, y, z)


def total_possible_lines(grid_size: int) -> int:
    return 3 * grid_size * grid_size * (grid_size - 1)


def total_possible_cubes(grid_size: int) -> int:
    return max(grid_size - 1, 0) ** 3
