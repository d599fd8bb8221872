import math

EPSILON = 1e-9


class vec3:
    """
    Immutable-by-convention 3D vector used for positions and directions.

    - Arithmetic returns new vectors; `abs(v)` and `v.length()` give the norm.
    - `rotate` turns the vector around an arbitrary axis (radians).
    """
    def __init__(self, x=0.0, y=0.0, z=0.0):
        self.x = float(x)
        self.y = float(y)
        self.z = float(z)

    @classmethod
    def from_iterable(cls, values):
        x, y, z = values
        return cls(x, y, z)

    def __add__(self, other):
        return vec3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other):
        return vec3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, other):
        return vec3(self.x * other, self.y * other, self.z * other)

    __rmul__ = __mul__

    def __truediv__(self, other):
        return vec3(self.x / other, self.y / other, self.z / other)

    def __str__(self):
        return f"({self.x}, {self.y}, {self.z})"

    def __repr__(self):
        return f"vec3({self.x}, {self.y}, {self.z})"

    def __eq__(self, other):
        return self.x == other.x and self.y == other.y and self.z == other.z

    def __ne__(self, other):
        return not self == other

    def __neg__(self):
        return vec3(-self.x, -self.y, -self.z)

    def __abs__(self):
        return (self.x**2 + self.y**2 + self.z**2)**0.5

    def __iter__(self):
        return iter([self.x, self.y, self.z])

    def dot(self, other):
        return self.x * other.x + self.y * other.y + self.z * other.z

    def cross(self, other):
        return vec3(self.y * other.z - self.z * other.y,
                    self.z * other.x - self.x * other.z,
                    self.x * other.y - self.y * other.x)

    def normalized(self):
        return self / abs(self)

    def rotate(self, axis, angle):
        """Rotate around `axis` by `angle` radians (Rodrigues)."""
        axis = axis.normalized()
        u = axis * self.dot(axis)
        w = self - u
        v = axis.cross(w)
        return u + w * math.cos(angle) + v * math.sin(angle)

    def lerp(self, other, t):
        return self * (1.0 - t) + other * t

    def length(self):
        return math.sqrt(self.x**2 + self.y**2 + self.z**2)

    def as_tuple(self):
        return (self.x, self.y, self.z)


class Frame:
    """
    Orthonormal local frame carried along a branch.

    - forward: growth direction of the branch
    - side, up: span the cross-section plane, with side x up == forward
    """
    __slots__ = ("forward", "side", "up")

    def __init__(self, forward: vec3, side: vec3, up: vec3):
        self.forward = forward
        self.side = side
        self.up = up

    def __repr__(self):
        return f"Frame(forward={self.forward!r}, side={self.side!r}, up={self.up!r})"

    @classmethod
    def from_direction(cls, direction: vec3):
        """
        Builds a frame whose forward axis is `direction`.
        The side axis is found by crossing with a world-axis candidate.
        """
        if direction.length() < 1e-6:
            return cls(vec3(0, 0, 1), vec3(1, 0, 0), vec3(0, 1, 0))
        forward = direction.normalized()

        up_candidate = vec3(0, 1, 0)
        # If they are nearly parallel, change the candidate
        if abs(forward.dot(up_candidate)) > 0.999:
            up_candidate = vec3(1, 0, 0)

        side = forward.cross(up_candidate).normalized()
        up = forward.cross(side).normalized()
        return cls(forward, side, up)

    def orthonormalized(self):
        forward = self.forward.normalized()
        side = self.side - forward * self.side.dot(forward)
        if side.length() < 1e-6:
            return Frame.from_direction(forward)
        side = side.normalized()
        return Frame(forward, side, forward.cross(side))

    def transported(self, new_forward: vec3):
        """
        Parallel-transport the frame onto `new_forward` with the minimal rotation,
        so the cross-section does not spin between consecutive rings.
        """
        new_forward = new_forward.normalized()
        axis = self.forward.cross(new_forward)
        cos_angle = max(-1.0, min(1.0, self.forward.dot(new_forward)))
        if axis.length() < EPSILON:
            if cos_angle > 0.0:
                return Frame(new_forward, self.side, self.up).orthonormalized()
            # Reversal: flip around the side axis.
            return Frame(new_forward, self.side, -self.up).orthonormalized()
        angle = math.acos(cos_angle)
        side = self.side.rotate(axis, angle)
        return Frame(new_forward, side, self.up).orthonormalized()

    def rolled(self, angle):
        """Roll the cross-section around the forward axis by `angle` radians."""
        side = self.side * math.cos(angle) + self.up * math.sin(angle)
        return Frame(self.forward, side, self.forward.cross(side))

    def radial(self, angle):
        """Unit vector in the cross-section plane at azimuth `angle` radians from side."""
        return self.side * math.cos(angle) + self.up * math.sin(angle)


def random_unit_vector(rng):
    """
    Generate a random unit vector uniformly distributed on the sphere.
    Consumes exactly two draws from `rng`.
    """
    theta = rng.random() * 2.0 * math.pi
    z = rng.uniform(-1.0, 1.0)
    r = math.sqrt(max(0.0, 1.0 - z * z))
    x = r * math.cos(theta)
    y = r * math.sin(theta)
    return vec3(x, y, z)
