import unittest

from lxml import etree as LXML_ET

from opfgraph.models import Identifier, Title
from opfgraph.parser import parse
from opfgraph.references import resolve_references


def _opf(
    metadata: str = "",
    manifest: str = "",
    spine: str = "",
    extra: str = "",
    package_attrs: str = 'version="3.0" unique-identifier="bookid"',
) -> str:
    return (
        '<?xml version="1.0" encoding="UTF-8"?>'
        f'<package xmlns="http://www.idpf.org/2007/opf" {package_attrs}>'
        f'<metadata xmlns:dc="http://purl.org/dc/elements/1.1/">{metadata}</metadata>'
        f"<manifest>{manifest}</manifest>"
        f"<spine>{spine}</spine>"
        f"{extra}"
        "</package>"
    )


SAMPLE_OPF = _opf(
    metadata=(
        '<dc:identifier id="bookid">urn:uuid:1234</dc:identifier>'
        '<dc:identifier id="isbn">9780000000002</dc:identifier>'
        '<meta refines="#isbn" property="identifier-type" scheme="onix:codelist5">15</meta>'
        '<dc:title id="t1">Moby-Dick</dc:title>'
        '<meta refines="#t1" property="title-type">main</meta>'
        '<meta refines="#t1" property="display-seq">1</meta>'
        '<dc:title id="t2">Or, The Whale</dc:title>'
        '<meta refines="#t2" property="title-type">subtitle</meta>'
        '<dc:language>en</dc:language>'
        '<dc:creator id="creator">Herman Melville</dc:creator>'
        '<meta refines="#creator" property="role" scheme="marc:relators" id="role">aut</meta>'
        '<meta refines="#creator" property="file-as">Melville, Herman</meta>'
        '<dc:subject>Whaling</dc:subject>'
        '<dc:subject>Sea stories</dc:subject>'
        '<dc:rights>Public domain</dc:rights>'
        '<meta property="dcterms:modified">2012-01-18T12:47:00Z</meta>'
        '<meta refines="#missing" property="alternate-script">nothing</meta>'
        '<link rel="record" href="meta/record.xml" media-type="application/marcxml+xml"/>'
        '<link rel="xml-signature" href="#creator" refines="#creator" id="sig"/>'
    ),
    manifest=(
        '<item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>'
        '<item id="cover" href="images/cover.jpg" media-type="image/jpeg" properties="cover-image"/>'
        '<item id="c1" href="text/ch1.xhtml" media-type="application/xhtml+xml" media-overlay="c1-smil"/>'
        '<item id="c1-smil" href="smil/ch1.smil" media-type="application/smil+xml"/>'
        '<item id="c2" href="text/ch2.xhtml" media-type="application/xhtml+xml" properties="scripted svg"/>'
        '<item id="css" href="style/main.css" media-type="text/css"/>'
        '<item id="fig1" href="images/fig1.png" media-type="image/png"/>'
        '<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>'
    ),
    spine=(
        '<itemref idref="c1" id="ir1" properties="page-spread-right"/>'
        '<itemref idref="nav" linear="no"/>'
        '<itemref idref="c2" linear="yes"/>'
        '<itemref idref="ghost"/>'
    ),
    extra=(
        "<guide>"
        '<reference type="cover" title="Cover" href="cover.xhtml"/>'
        '<reference type="toc" title="Contents" href="nav.xhtml#toc"/>'
        "</guide>"
    ),
    package_attrs=(
        'version="3.0" unique-identifier="bookid" xml:lang="en" dir="ltr" id="pkg" '
        'prefix="marc: http://id.loc.gov/vocabulary/"'
    ),
)


class PackageAttributeTests(unittest.TestCase):
    def test_root_attributes(self) -> None:
        package = parse(SAMPLE_OPF, "OEBPS/content.opf")
        self.assertEqual(package.version, "3.0")
        self.assertEqual(package.unique_identifier_id, "bookid")
        self.assertEqual(package.xml_lang, "en")
        self.assertEqual(package.dir, "ltr")
        self.assertEqual(package.id, "pkg")
        self.assertEqual(package.prefix, {"marc": "http://id.loc.gov/vocabulary/"})
        self.assertFalse(package.fixed_layout)
        self.assertIsNone(package.rendition_layout)
        self.assertEqual(package.rootfile_path, "OEBPS/content.opf")

    def test_accepts_bytes(self) -> None:
        package = parse(SAMPLE_OPF.encode("utf-8"))
        self.assertEqual(package.version, "3.0")
        self.assertEqual(package.rootfile_path, "")

    def test_rendition_prefix_sets_fixed_layout(self) -> None:
        opf = _opf(
            metadata='<meta property="rendition:layout">pre-paginated</meta>',
            manifest='<item id="p1" href="p1.xhtml" media-type="application/xhtml+xml"/>',
            spine=(
                '<itemref idref="p1" properties="rendition:page-spread-center"/>'
                '<itemref idref="p1" properties="rendition:layout-reflowable"/>'
            ),
            package_attrs='version="3.0" prefix="rendition: http://www.idpf.org/vocab/rendition/#"',
        )
        package = parse(opf)
        self.assertTrue(package.fixed_layout)
        self.assertEqual(package.rendition_layout, "pre-paginated")
        first, second = package.spine.itemrefs
        self.assertEqual(first.page_spread, "center")
        self.assertEqual(first.rendition_layout, "pre-paginated")
        self.assertEqual(second.rendition_layout, "reflowable")

    def test_malformed_xml_propagates(self) -> None:
        with self.assertRaises(LXML_ET.XMLSyntaxError):
            parse("<package><metadata></package>")

    def test_missing_sections_degrade_to_empty_models(self) -> None:
        package = parse('<package xmlns="http://www.idpf.org/2007/opf" version="2.0"/>')
        self.assertEqual(package.manifest.items, [])
        self.assertEqual(package.spine.itemrefs, [])
        self.assertEqual(package.metadata.titles, [])
        self.assertEqual(len(package.guide), 0)
        self.assertEqual(len(package.bindings), 0)
        self.assertIsNone(package.metadata.unique_identifier)


class MetadataTests(unittest.TestCase):
    def setUp(self) -> None:
        self.package = parse(SAMPLE_OPF)
        self.metadata = self.package.metadata

    def test_unique_identifier_selection(self) -> None:
        unique = self.metadata.unique_identifier
        self.assertIsInstance(unique, Identifier)
        self.assertIs(unique, self.metadata.identifiers[0])
        self.assertEqual(unique.content, "urn:uuid:1234")
        self.assertIs(self.package.unique_identifier, unique)

    def test_unique_identifier_undefined_when_no_match(self) -> None:
        opf = _opf(
            metadata='<dc:identifier id="other">x</dc:identifier>',
            package_attrs='version="3.0" unique-identifier="bookid"',
        )
        package = parse(opf)
        self.assertIsNone(package.metadata.unique_identifier)
        self.assertEqual(len(package.metadata.identifiers), 1)

    def test_dcmes_lists_in_document_order(self) -> None:
        self.assertEqual([t.content for t in self.metadata.titles], ["Moby-Dick", "Or, The Whale"])
        self.assertTrue(all(isinstance(t, Title) for t in self.metadata.titles))
        self.assertEqual([s.content for s in self.metadata.subjects], ["Whaling", "Sea stories"])
        self.assertEqual([lang.content for lang in self.metadata.languages], ["en"])
        self.assertEqual([r.content for r in self.metadata.rights], ["Public domain"])
        self.assertEqual(self.metadata.publishers, [])

    def test_refiners_are_wired_both_ways(self) -> None:
        creator = self.metadata.creators[0]
        self.assertEqual([getattr(r, "property", None) for r in creator.refiners], ["role", "file-as", None])
        self.assertEqual(creator.role, "aut")
        self.assertEqual(creator.file_as, "Melville, Herman")
        for refiner in creator.refiners:
            self.assertIs(refiner.refines, creator)

    def test_link_refines_metadata(self) -> None:
        signature = [link for link in self.metadata.links if link.id == "sig"][0]
        self.assertEqual(signature.rel, {"xml-signature"})
        self.assertIs(signature.refines, self.metadata.creators[0])

    def test_links_read_their_attributes(self) -> None:
        record = self.metadata.links[0]
        self.assertEqual(record.href, "meta/record.xml")
        self.assertEqual(record.rel, {"record"})
        self.assertEqual(record.media_type, "application/marcxml+xml")
        self.assertIsNone(record.refines)

    def test_title_refinements(self) -> None:
        main, subtitle = self.metadata.titles
        self.assertEqual(main.title_type, "main")
        self.assertEqual(main.display_seq, 1)
        self.assertEqual(subtitle.title_type, "subtitle")
        self.assertIsNone(subtitle.display_seq)
        self.assertEqual(self.metadata.title, "Moby-Dick")

    def test_identifier_scheme_from_refinement(self) -> None:
        self.assertEqual(self.metadata.identifiers[1].scheme, "15")
        self.assertIsNone(self.metadata.identifiers[0].scheme)

    def test_dangling_refines_is_orphaned(self) -> None:
        orphan = [meta for meta in self.metadata.metas if meta.refines_iri == "#missing"]
        self.assertEqual(len(orphan), 1)
        self.assertEqual(orphan[0].content, "nothing")
        self.assertIsNone(orphan[0].refines)

    def test_meta_refining_a_meta(self) -> None:
        opf = _opf(
            metadata=(
                '<dc:creator id="c">A</dc:creator>'
                '<meta refines="#c" property="role" id="r">aut</meta>'
                '<meta refines="#r" property="alternate-script" xml:lang="ja">著者</meta>'
            )
        )
        metadata = parse(opf).metadata
        role, script = metadata.metas
        self.assertIs(script.refines, role)
        self.assertEqual(role.refiners, [script])
        self.assertIs(role.refines, metadata.creators[0])

    def test_refinement_is_order_independent(self) -> None:
        opf = _opf(
            metadata=(
                '<meta refines="#late" property="file-as">Later, Al</meta>'
                '<dc:contributor id="late">Al Later</dc:contributor>'
            )
        )
        contributor = parse(opf).metadata.contributors[0]
        self.assertEqual(contributor.file_as, "Later, Al")

    def test_modified_and_release_identifier(self) -> None:
        self.assertEqual(self.metadata.modified, "2012-01-18T12:47:00Z")
        self.assertEqual(self.metadata.release_identifier, "urn:uuid:1234@2012-01-18T12:47:00Z")

    def test_epub2_meta_and_opf_attributes(self) -> None:
        opf = _opf(
            metadata=(
                '<dc:identifier id="bookid" opf:scheme="ISBN" '
                'xmlns:opf="http://www.idpf.org/2007/opf">9780000000002</dc:identifier>'
                '<dc:creator opf:role="aut" opf:file-as="Doe, Jane" '
                'xmlns:opf="http://www.idpf.org/2007/opf">Jane Doe</dc:creator>'
                '<meta name="cover" content="cover-img"/>'
            ),
            manifest='<item id="cover-img" href="cover.png" media-type="image/png"/>',
            package_attrs='version="2.0" unique-identifier="bookid"',
        )
        package = parse(opf)
        self.assertEqual(package.metadata.identifiers[0].scheme, "ISBN")
        self.assertEqual(package.metadata.creators[0].role, "aut")
        self.assertEqual(package.metadata.creators[0].file_as, "Doe, Jane")
        meta = package.metadata.metas[0]
        self.assertEqual((meta.name, meta.content), ("cover", "cover-img"))
        self.assertIsNone(package.manifest.cover_image)
        self.assertIs(package.cover_item, package.manifest["cover-img"])

    def test_refinement_wiring_is_idempotent(self) -> None:
        creator = self.metadata.creators[0]
        before = [(id(r), id(r.refines)) for r in creator.refiners]
        resolve_references(self.package)
        resolve_references(self.package)
        after = [(id(r), id(r.refines)) for r in creator.refiners]
        self.assertEqual(before, after)
        self.assertIs(self.metadata.unique_identifier, self.metadata.identifiers[0])


class ManifestTests(unittest.TestCase):
    def setUp(self) -> None:
        self.package = parse(SAMPLE_OPF, "OEBPS/content.opf")
        self.manifest = self.package.manifest

    def test_items_in_document_order(self) -> None:
        self.assertEqual(
            [item.id for item in self.manifest.items],
            ["nav", "cover", "c1", "c1-smil", "c2", "css", "fig1", "ncx"],
        )
        self.assertEqual(len(self.manifest), 8)
        self.assertEqual([item.id for item in self.manifest], [item.id for item in self.manifest.items])

    def test_lookup_by_id(self) -> None:
        self.assertEqual(self.manifest["c1"].href, "text/ch1.xhtml")
        self.assertIsNone(self.manifest["nope"])
        self.assertIn("c2", self.manifest)
        self.assertNotIn("nope", self.manifest)

    def test_item_attributes(self) -> None:
        c2 = self.manifest["c2"]
        self.assertEqual(c2.media_type, "application/xhtml+xml")
        self.assertEqual(c2.properties, {"scripted", "svg"})
        self.assertTrue(c2.is_xhtml)
        self.assertIsNone(c2.fallback)
        self.assertIs(c2.manifest, self.manifest)
        self.assertIs(c2.package, self.package)

    def test_nav_and_cover(self) -> None:
        self.assertEqual(self.manifest.nav.id, "nav")
        self.assertEqual([item.id for item in self.manifest.navs], ["nav"])
        self.assertEqual(self.manifest.cover_image.id, "cover")
        self.assertIs(self.package.cover_item, self.manifest.cover_image)

    def test_media_overlay_item(self) -> None:
        self.assertIs(self.manifest["c1"].media_overlay_item, self.manifest["c1-smil"])
        self.assertIsNone(self.manifest["c2"].media_overlay_item)

    def test_entry_resolved_path(self) -> None:
        self.assertEqual(self.manifest["c1"].entry_resolved_path(), "OEBPS/text/ch1.xhtml")
        self.assertEqual(self.manifest["c1"].entry_resolved_path("content.opf"), "text/ch1.xhtml")

    def test_find_item_by_relative_iri(self) -> None:
        c1 = self.manifest["c1"]
        self.assertIs(c1.find_item_by_relative_iri("../images/fig1.png"), self.manifest["fig1"])
        self.assertIs(c1.find_item_by_relative_iri("./ch2.xhtml"), self.manifest["c2"])
        self.assertIs(c1.find_item_by_relative_iri("ch2.xhtml#part"), self.manifest["c2"])
        self.assertIsNone(c1.find_item_by_relative_iri("../images/none.png"))

    def test_itemref_backlink(self) -> None:
        self.assertEqual(self.manifest["c1"].itemref.id, "ir1")
        self.assertIsNone(self.manifest["css"].itemref)

    def test_item_without_id_has_no_itemref(self) -> None:
        opf = _opf(
            manifest='<item href="loose.xhtml" media-type="application/xhtml+xml"/>',
            spine="<itemref/>",
        )
        item = parse(opf).manifest.items[0]
        self.assertIsNone(item.id)
        self.assertIsNone(item.itemref)

    def test_duplicate_ids_keep_first(self) -> None:
        opf = _opf(
            manifest=(
                '<item id="a" href="one.xhtml" media-type="application/xhtml+xml"/>'
                '<item id="a" href="two.xhtml" media-type="application/xhtml+xml"/>'
                '<item id="b" href="one.xhtml" media-type="application/xhtml+xml"/>'
            )
        )
        with self.assertLogs("opfgraph.parser", level="WARNING"):
            manifest = parse(opf).manifest
        self.assertEqual([item.id for item in manifest.items], ["a", "b"])
        self.assertEqual(manifest["a"].href, "one.xhtml")
        self.assertEqual(len({item.id for item in manifest.items}), len(manifest.items))

    def test_item_without_href_is_kept(self) -> None:
        opf = _opf(manifest='<item id="x" media-type="text/css"/>')
        item = parse(opf).manifest["x"]
        self.assertIsNone(item.href)
        self.assertEqual(item.properties, set())

    def test_end_to_end_single_nav_item(self) -> None:
        opf = _opf(manifest='<item id="nav" href="nav.xhtml" properties="nav"/>')
        manifest = parse(opf).manifest
        self.assertEqual(manifest.nav.id, "nav")
        self.assertEqual(len(manifest.items), 1)


class SpineGuideBindingsTests(unittest.TestCase):
    def setUp(self) -> None:
        self.package = parse(SAMPLE_OPF)

    def test_itemrefs_in_document_order(self) -> None:
        spine = self.package.spine
        self.assertEqual([ref.idref for ref in spine.itemrefs], ["c1", "nav", "c2", "ghost"])
        self.assertEqual([ref.linear for ref in spine.itemrefs], [True, False, True, True])
        self.assertEqual(spine.itemrefs[0].properties, {"page-spread-right"})
        self.assertEqual(spine.itemrefs[0].page_spread, "right")
        self.assertIsNone(spine.itemrefs[0].rendition_layout)

    def test_dangling_idref_resolves_to_none(self) -> None:
        spine = self.package.spine
        self.assertIs(spine.itemrefs[0].item, self.package.manifest["c1"])
        self.assertIsNone(spine.itemrefs[3].item)
        self.assertEqual([item.id for item in spine.items], ["c1", "nav", "c2"])

    def test_spine_attributes(self) -> None:
        opf = _opf(
            manifest='<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>',
            spine="",
        ).replace("<spine>", '<spine id="sp" toc="ncx" page-progression-direction="rtl">')
        spine = parse(opf).spine
        self.assertEqual(spine.id, "sp")
        self.assertEqual(spine.toc, "ncx")
        self.assertEqual(spine.page_progression_direction, "rtl")
        self.assertEqual(spine.toc_item.href, "toc.ncx")

    def test_guide_references(self) -> None:
        guide = self.package.guide
        self.assertEqual([(r.type, r.title, r.href) for r in guide], [
            ("cover", "Cover", "cover.xhtml"),
            ("toc", "Contents", "nav.xhtml#toc"),
        ])
        self.assertEqual(guide.reference("toc").title, "Contents")
        self.assertIsNone(guide.reference("index"))

    def test_bindings_resolve_handlers(self) -> None:
        opf = _opf(
            manifest=(
                '<item id="impl" href="impl.xhtml" media-type="application/xhtml+xml" properties="scripted"/>'
                '<item id="slides" href="slides.xml" media-type="application/x-demo-slideshow"/>'
            ),
            extra=(
                "<bindings>"
                '<mediaType media-type="application/x-demo-slideshow" handler="impl"/>'
                '<mediaType media-type="application/x-missing" handler="gone"/>'
                "</bindings>"
            ),
        )
        package = parse(opf)
        bindings = package.bindings
        self.assertEqual(len(bindings), 2)
        self.assertIs(bindings.handler_for("application/x-demo-slideshow"), package.manifest["impl"])
        self.assertEqual(bindings["application/x-missing"].handler_id, "gone")
        self.assertIsNone(bindings.handler_for("application/x-missing"))
        self.assertIsNone(bindings["text/plain"])


if __name__ == "__main__":
    unittest.main()
