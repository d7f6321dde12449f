import math

import pytest

from multitypetree import RealParameter, BooleanParameter, ValidationError


class TestRealParameter:
    def test_values(self):
        p = RealParameter(values=[1, 2.5])
        assert p.values == [1.0, 2.5]
        assert all(isinstance(x, float) for x in p.values)
        assert p.dimension == 2
        assert len(p) == 2
        assert p[1] == 2.5
        assert not p.estimate
        assert p.lower == -math.inf
        assert p.upper == math.inf

    def test_scalar(self):
        p = RealParameter(values=3)
        assert p.values == [3.0]

    def test_empty(self):
        p = RealParameter(values=[])
        assert p.dimension == 0

    @pytest.mark.parametrize("value", ["1", None, math.nan, True])
    def test_bad_values(self, value):
        with pytest.raises(TypeError):
            RealParameter(values=[value])

    def test_bounds(self):
        p = RealParameter(values=[1.0, 2.0], lower=0, upper=2)
        assert p.within_bounds()
        p[0] = -1
        assert not p.within_bounds()
        with pytest.raises(ValidationError):
            RealParameter(values=[1.0], lower=2, upper=1)

    def test_set_values(self):
        p = RealParameter(values=[1.0])
        p.set_values([4, 5])
        assert p.values == [4.0, 5.0]

    def test_set_dimension(self):
        p = RealParameter(values=[1.0, 2.0, 3.0])
        p.set_dimension(2)
        assert p.values == [1.0, 2.0]
        p.set_dimension(4, fill=0.5)
        assert p.values == [1.0, 2.0, 0.5, 0.5]
        with pytest.raises(ValidationError):
            p.set_dimension(-1)

    def test_keyword_only(self):
        with pytest.raises(TypeError):
            RealParameter([1.0])


class TestBooleanParameter:
    def test_values(self):
        p = BooleanParameter(values=[1, 0, True])
        assert p.values == [True, False, True]
        assert p[1] is False
        p[1] = 1
        assert p[1] is True

    def test_set_dimension(self):
        p = BooleanParameter(values=[False])
        p.set_dimension(3)
        assert p.values == [False, True, True]
        p.set_dimension(0)
        assert p.dimension == 0
