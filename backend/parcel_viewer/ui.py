UI_PAGE = """
<!DOCTYPE html>
<html lang='en'>
  <head>
    <meta charset='utf-8' />
    <meta name='viewport' content='width=device-width, initial-scale=1' />
    <title>Marin Parcel Viewer</title>
    <link rel='stylesheet' href='https://unpkg.com/leaflet@1.9.4/dist/leaflet.css' />
    <link rel='stylesheet' href='https://unpkg.com/esri-leaflet-geocoder@3.1.4/dist/esri-leaflet-geocoder.css' />
    <style>
      :root {
        font-family: system-ui, -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;
      }
      html, body {
        margin: 0;
        height: 100%;
      }
      .layout {
        display: flex;
        height: 100%;
      }
      #sidebar {
        width: 320px;
        padding: 1rem;
        overflow-y: auto;
        background: #f8fafc;
        border-right: 1px solid #e2e8f0;
      }
      #sidebar h1 {
        font-size: 1.1rem;
        margin: 0 0 1rem 0;
      }
      #searchWidget {
        width: 100%;
        margin-bottom: 1rem;
      }
      #viewDiv {
        flex: 1;
      }
    </style>
  </head>
  <body>
    <div class='layout'>
      <aside id='sidebar'>
        <h1>Marin Parcel Viewer</h1>
        <div id='searchWidget'></div>
        <div id='results'><p>Click the map or search for an address.</p></div>
      </aside>
      <div id='viewDiv'></div>
    </div>
    <script src='https://unpkg.com/leaflet@1.9.4/dist/leaflet.js'></script>
    <script src='https://unpkg.com/esri-leaflet@3.0.12/dist/esri-leaflet.js'></script>
    <script src='https://unpkg.com/esri-leaflet-geocoder@3.1.4/dist/esri-leaflet-geocoder.js'></script>
    <script>
      (function () {
        const ZOOM_0_SCALE = 591657527.591555;
        const map = L.map('viewDiv').setView([38.0521, -122.7100], 9);
        L.tileLayer('https://{s}.tile.openstreetmap.org/{z}/{x}/{y}.png', {
          attribution: '&copy; OpenStreetMap contributors'
        }).addTo(map);

        const overlays = {};
        let marker = null;

        fetch('/api/layers')
          .then((response) => response.json())
          .then((layers) => {
            layers.forEach((layer) => {
              overlays[layer.id] = L.esri.featureLayer({ url: layer.url });
              if (layer.visible) {
                overlays[layer.id].addTo(map);
              }
            });
          });

        function applyVisibility(visibility) {
          Object.entries(visibility || {}).forEach(([id, visible]) => {
            const layer = overlays[id];
            if (!layer) {
              return;
            }
            if (visible && !map.hasLayer(layer)) {
              layer.addTo(map);
            } else if (!visible && map.hasLayer(layer)) {
              map.removeLayer(layer);
            }
          });
        }

        function applyRound(round) {
          document.getElementById('results').innerHTML = round.sidebarHtml;

          if (marker) {
            map.removeLayer(marker);
          }
          marker = L.circleMarker([round.point.y, round.point.x], {
            radius: 5,
            color: 'red',
            fillColor: 'red',
            fillOpacity: 1
          }).addTo(map);

          const target = round.goTo.target;
          if (target.type === 'extent') {
            map.fitBounds([[target.ymin, target.xmin], [target.ymax, target.xmax]]);
          } else {
            map.setView([round.view.center.y, round.view.center.x], round.goTo.zoom);
          }
          applyVisibility(round.view.layerVisibility);
        }

        function postJson(url, body) {
          return fetch(url, {
            method: 'POST',
            headers: { 'Content-Type': 'application/json' },
            body: JSON.stringify(body)
          }).then((response) => {
            if (!response.ok) {
              throw new Error('Request failed with status ' + response.status);
            }
            return response.json();
          });
        }

        function toPoint(latlng) {
          return { x: latlng.lng, y: latlng.lat, spatialReference: { wkid: 4326 } };
        }

        map.on('click', (event) => {
          postJson('/api/click', { point: toPoint(event.latlng) })
            .then(applyRound)
            .catch((error) => console.error('Click lookup failed', error));
        });

        map.on('zoomend', () => {
          const scale = ZOOM_0_SCALE / Math.pow(2, map.getZoom());
          postJson('/api/view/scale', { scale: scale })
            .then((data) => applyVisibility(data.layerVisibility))
            .catch((error) => console.error('Scale update failed', error));
        });

        const search = L.esri.Geocoding.geosearch({
          position: 'topright',
          useMapBounds: false
        }).addTo(map);
        document.getElementById('searchWidget').appendChild(search.getContainer());

        search.on('results', (data) => {
          if (!data.results.length) {
            return;
          }
          postJson('/api/search/select', { geometry: toPoint(data.results[0].latlng) })
            .then(applyRound)
            .catch((error) => console.error('Search lookup failed', error));
        });
      })();
    </script>
  </body>
</html>
"""
