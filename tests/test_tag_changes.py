from lanelet_fusion.conflation.tag_changes import check_tag_change, merge_point_vec


def _active_values(pline, changes):
    """Replay the change list along the route: value in effect on every segment."""
    out = []
    passed = 0
    change_ids = [p.id for p in changes.points]
    for seg in pline:
        if passed < len(change_ids) and seg.front().id == change_ids[passed]:
            passed += 1
        out.append(changes.values[passed])
    return out


def test_no_change_gives_single_value(route):
    pline = route([0, 10, 20, 30], tags=[{"highway": "primary"}] * 3)
    changes = check_tag_change(pline, ["highway", "maxspeed"])
    assert changes["highway"].points == []
    assert changes["highway"].values == ["primary"]
    assert changes["maxspeed"].values == [""]


def test_changes_include_appearing_and_disappearing_tags(route):
    tags = [{"maxspeed": "50"}, {}, {"maxspeed": "50"}, {"maxspeed": "70"}]
    pline = route([0, 10, 20, 30, 40], tags=tags)
    changes = check_tag_change(pline, ["maxspeed"])["maxspeed"]
    assert changes.points == [pline[1].front(), pline[2].front(), pline[3].front()]
    assert changes.values == ["50", "", "50", "70"]


def test_values_reproduce_every_segment(route):
    tags = [
        {"highway": "motorway", "lanes": "3"},
        {"highway": "motorway", "lanes": "2"},
        {"highway": "trunk", "lanes": "2"},
        {"highway": "trunk"},
        {"highway": "primary", "lanes": "2"},
    ]
    pline = route([0, 10, 20, 30, 40, 50], tags=tags)
    changes = check_tag_change(pline, ["highway", "lanes", "name"])
    for key, key_changes in changes.items():
        assert len(key_changes.values) == len(key_changes.points) + 1
        expected = [seg.attributes.get(key, "") for seg in pline]
        assert _active_values(pline, key_changes) == expected


def test_empty_route():
    changes = check_tag_change([], ["highway"])
    assert changes["highway"].points == []
    assert changes["highway"].values == [""]


def test_merge_point_vec_deduplicates_by_identity(route):
    pline = route([0, 10, 20, 30])
    a, b, c = (seg.front() for seg in pline)
    merged = merge_point_vec([[b, c], [c, a], [b]])
    assert merged == [b, c, a]
